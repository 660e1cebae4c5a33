"""
Main Epoching and Stimulus Matching Pipeline

Orchestrates the workflow for one recording: epoch the EEG into trials of
variable duration, then match each trial's StimTrack channel against the
candidate audio stimuli and save the resulting match table.
"""

import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, Dict, Any
import pandas as pd

from .loading import load_eeg_data, events_from_raw, get_recording_data, get_audio_files, load_stimuli
from .events import count_marker_events
from .epoching import segment_epochs, create_epochs_summary
from .matching import match_epochs_to_stimuli
from .utils import create_output_structure, save_checkpoint, log_processing_stage, create_config_file, load_config_file
from . import __version__


def create_default_config() -> Dict[str, Any]:
    """
    Create default configuration for epoching and matching

    Returns:
    --------
    config : dict
        Default configuration parameters
    """
    config = {
        'epoching': {
            'onset_marker': 'Onset',
            'offset_marker': 'Offset',
            'min_boundary_distance': 200
        },
        'matching': {
            'stim_channel': 64,
            'track_rate': 500,
            'audio_rate': 44100,
            'prefilter': False,
            'n_trials': None
        },
        'pipeline': {
            'save_epochs': True
        }
    }

    return config


def merge_config(config: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """
    Overlay user settings on a config, section by section
    """
    merged = {section: dict(values) for section, values in config.items()}
    for section, values in overrides.items():
        merged.setdefault(section, {}).update(values)

    return merged


def validate_inputs(set_path: str, stim_dir: str, output_dir: str) -> None:
    """
    Validate input paths and create the output directory
    """
    if not os.path.exists(set_path):
        raise FileNotFoundError(f"EEG dataset not found: {set_path}")

    if not os.path.isdir(stim_dir):
        raise FileNotFoundError(f"Stimulus directory not found: {stim_dir}")

    os.makedirs(output_dir, exist_ok=True)


def check_marker_labels(events: pd.DataFrame, onset_marker: str, offset_marker: str) -> bool:
    """
    Warn when no event label contains the onset or offset marker

    EEGLAB sets exported with numeric event types carry no marker text,
    which would otherwise just yield zero epochs.
    """
    marker_counts = count_marker_events(events, onset_marker, offset_marker)
    print(f"  Marker events: {marker_counts}")

    missing = [name for name, marker in (('onset', onset_marker), ('offset', offset_marker))
               if marker_counts[name] == 0]
    if missing:
        print(f"  Warning: no event labels contain the {' or '.join(missing)} marker "
              f"(onset={onset_marker!r}, offset={offset_marker!r}); check that the "
              f"recording stores trial labels in the EEGLAB event type field")
        return False

    return True


def run_single_recording(set_path: str, stim_dir: str, output_dir: str,
                         config: Optional[Dict[str, Any]] = None) -> Optional[pd.DataFrame]:
    """
    Run epoching and stimulus matching for one recording

    Parameters:
    -----------
    set_path : str
        Path to the EEGLAB .set file
    stim_dir : str
        Directory holding the candidate stimuli
    output_dir : str
        Path to output directory
    config : dict, optional
        Configuration parameters

    Returns:
    --------
    matches : pd.DataFrame or None
        Match table, or None if processing failed
    """
    if config is None:
        config = create_default_config()

    epoch_cfg = config['epoching']
    match_cfg = config['matching']
    recording_id = Path(set_path).stem

    print(f"\n{'='*60}")
    print(f"Processing recording: {recording_id}")
    print(f"{'='*60}")

    try:
        # Step 1: Load raw data
        print("Step 1: Loading EEG data...")
        raw = load_eeg_data(set_path)
        events = events_from_raw(raw)
        data = get_recording_data(raw)
        print(f"  Loaded: {data.shape[1]} samples, {data.shape[0]} channels, {len(events)} events")
        check_marker_labels(events, epoch_cfg['onset_marker'], epoch_cfg['offset_marker'])

        # Step 2: Epoching
        print("Step 2: Epoching trials...")
        epochs, counts = segment_epochs(
            events,
            epoch_cfg['min_boundary_distance'],
            epoch_cfg['onset_marker'],
            epoch_cfg['offset_marker'],
            data
        )
        print(f"  Total trials added: {counts['added']}")
        print(f"  Total invalid trials: {counts['invalid']}")
        print(f"  Total trials rejected due to proximity to boundary: {counts['rejected_near_boundary']}")

        summary = create_epochs_summary(epochs)
        if not summary.empty:
            print(f"  Trial types: {summary.set_index('type_label')['n_epochs'].to_dict()}")

        create_output_structure(output_dir, recording_id)
        log_processing_stage(recording_id, "epoching_completed", datetime.now(),
                             output_dir, **counts)

        if config.get('pipeline', {}).get('save_epochs', True):
            save_checkpoint(epochs, recording_id, 'epoched', output_dir, format='pkl')

        # Step 3: Load candidate stimuli
        print("Step 3: Loading candidate stimuli...")
        audio_files = get_audio_files(stim_dir)
        stimuli = load_stimuli(audio_files)
        print(f"  Found {len(stimuli)} candidate stimuli")

        # Step 4: Matching
        print("Step 4: Matching trials to stimuli...")
        matches = match_epochs_to_stimuli(
            epochs,
            stimuli,
            match_cfg['stim_channel'],
            prefilter=match_cfg.get('prefilter', False),
            n_trials=match_cfg.get('n_trials'),
            orig_rate=match_cfg.get('audio_rate', 44100),
            target_rate=match_cfg.get('track_rate', 500)
        )
        print(f"  Matched {len(matches)} trials")

        save_checkpoint(matches, recording_id, 'matched', output_dir, format='csv')

        log_processing_stage(
            recording_id,
            "matching_completed",
            datetime.now(),
            output_dir,
            n_trials=len(matches),
            n_candidates=len(stimuli),
            mean_best_score=float(matches['best_score'].mean()) if len(matches) else None
        )

        print(f"✅ {recording_id} processing completed successfully!")
        return matches

    except Exception as e:
        print(f"❌ Error processing {recording_id}: {e}")
        import traceback
        traceback.print_exc()
        return None


def main():
    """
    Main function for command-line usage
    """
    import argparse

    parser = argparse.ArgumentParser(
        description='Epoch EEG into variable-duration trials and match each trial to its audio stimulus',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Epoch and match one recording
  epochmatch --set sub01_REST_elist.set --stims stims --output results

  # Custom markers and boundary distance
  epochmatch --set sub01.set --stims stims --output results --onset StimOn --offset StimOff --min-boundary-distance 500

  # Create config file
  epochmatch --create-config /path/to/config.json
        """
    )

    parser.add_argument('--set', dest='set_path', help='Path to the EEGLAB .set file')
    parser.add_argument('--stims', help='Directory of candidate audio stimuli')
    parser.add_argument('--output', help='Path to output directory')
    parser.add_argument('--onset', help='Onset marker substring')
    parser.add_argument('--offset', help='Offset marker substring')
    parser.add_argument('--min-boundary-distance', type=int, help='Minimum distance to a boundary event, in samples')
    parser.add_argument('--stim-channel', type=int, help='0-based index of the StimTrack channel')
    parser.add_argument('--n-trials', type=int, help='Only match the first N trials')
    parser.add_argument('--prefilter', action='store_true', help='Restrict candidates by trial type')
    parser.add_argument('--config', help='Configuration file path')
    parser.add_argument('--create-config', help='Create default config file at specified path')
    parser.add_argument('--version', action='version', version=f'epochmatch v{__version__}')

    args = parser.parse_args()

    if args.create_config:
        create_config_file(args.create_config, create_default_config())
        return

    if not args.set_path or not args.stims or not args.output:
        parser.error("--set, --stims and --output are required unless using --create-config")

    config = create_default_config()
    if args.config and os.path.exists(args.config):
        config = merge_config(config, load_config_file(args.config))

    overrides = {
        'epoching': {
            'onset_marker': args.onset,
            'offset_marker': args.offset,
            'min_boundary_distance': args.min_boundary_distance,
        },
        'matching': {
            'stim_channel': args.stim_channel,
            'n_trials': args.n_trials,
            'prefilter': args.prefilter or None,
        },
    }
    overrides = {section: {k: v for k, v in values.items() if v is not None}
                 for section, values in overrides.items()}
    config = merge_config(config, overrides)

    try:
        validate_inputs(args.set_path, args.stims, args.output)
        matches = run_single_recording(args.set_path, args.stims, args.output, config)
    except Exception as e:
        print(f"Pipeline failed: {e}")
        sys.exit(1)

    if matches is None:
        sys.exit(1)


if __name__ == "__main__":
    main()
