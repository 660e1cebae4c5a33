"""
EEG Epoching and Stimulus Matching Package

This package epochs continuous EEG recordings into trials of variable
duration and matches each trial to the audio stimulus that was presented,
using the StimTrack channel recorded alongside the EEG.

Modules:
--------
loading: EEGLAB recording and audio stimulus loading
events: Event table, marker filtering and trial-type parsing
epoching: Variable-duration epoching with boundary rejection
matching: Sliding-window correlation stimulus matching
utils: Checkpoint system and utilities
main_pipeline: Single-recording driver and command-line interface
"""

__version__ = "1.0.0"

from .loading import load_eeg_data, events_from_raw, get_recording_data, get_audio_files, load_audio, load_stimuli
from .events import create_event_table, filter_marker_events, parse_trial_type, filter_candidates_by_trial_type
from .epoching import Epoch, segment_epochs, extract_epoch, create_epochs_summary
from .matching import (normalize_waveform, prepare_candidate, window_correlations, max_window_correlation,
                       match_trial_to_stimuli, select_best_match, extract_stim_track, match_epochs_to_stimuli)
from .utils import create_output_structure, save_checkpoint, load_checkpoint

__all__ = [
    # Loading functions
    'load_eeg_data',
    'events_from_raw',
    'get_recording_data',
    'get_audio_files',
    'load_audio',
    'load_stimuli',

    # Event functions
    'create_event_table',
    'filter_marker_events',
    'parse_trial_type',
    'filter_candidates_by_trial_type',

    # Epoching functions
    'Epoch',
    'segment_epochs',
    'extract_epoch',
    'create_epochs_summary',

    # Matching functions
    'normalize_waveform',
    'prepare_candidate',
    'window_correlations',
    'max_window_correlation',
    'match_trial_to_stimuli',
    'select_best_match',
    'extract_stim_track',
    'match_epochs_to_stimuli',

    # Utility functions
    'create_output_structure',
    'save_checkpoint',
    'load_checkpoint',
]
