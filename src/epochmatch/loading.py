"""
EEG and Audio Loading Module

Loads EEGLAB recordings with MNE-Python, turns their annotations into the
event table used for epoching, and reads candidate stimulus audio files.
"""

import mne
import numpy as np
import pandas as pd
import soundfile as sf
import os
from pathlib import Path
from typing import Dict, List, Sequence, Tuple

AUDIO_EXTENSIONS = ('.wav', '.flac', '.ogg')


def load_eeg_data(set_path: str) -> mne.io.Raw:
    """
    Load an EEGLAB dataset

    Parameters:
    -----------
    set_path : str
        Path to the .set file

    Returns:
    --------
    raw : mne.io.Raw
        Raw EEG data, preloaded
    """
    if not os.path.exists(set_path):
        raise FileNotFoundError(f"EEG dataset not found: {set_path}")

    try:
        raw = mne.io.read_raw_eeglab(set_path, preload=True, verbose=False)
    except Exception as e:
        raise ValueError(f"Could not read EEG dataset {set_path}: {e}")

    return raw


def events_from_raw(raw: mne.io.Raw) -> pd.DataFrame:
    """
    Build the event table from the annotations of a Raw object

    Latencies are sample indices into raw.get_data(), i.e. relative to
    the first sample of the recording.

    Parameters:
    -----------
    raw : mne.io.Raw
        Raw EEG data

    Returns:
    --------
    events : pd.DataFrame
        Table with 'label' and 'latency' columns in temporal order
    """
    if len(raw.annotations) == 0:
        return pd.DataFrame({'label': pd.Series(dtype=str),
                             'latency': pd.Series(dtype=np.int64)})

    # regexp=None keeps every description, including 'boundary'
    events, event_id = mne.events_from_annotations(raw, regexp=None, verbose=False)
    code_to_label = {code: label for label, code in event_id.items()}

    event_table = pd.DataFrame({
        'label': [code_to_label[code] for code in events[:, 2]],
        'latency': (events[:, 0] - raw.first_samp).astype(np.int64),
    })

    return event_table


def get_recording_data(raw: mne.io.Raw) -> np.ndarray:
    """Return the recording as an array of shape (n_channels, n_times)"""
    return raw.get_data()


def get_audio_files(stim_dir: str) -> List[str]:
    """
    Get list of all audio files in a stimulus directory

    Parameters:
    -----------
    stim_dir : str
        Directory holding the candidate stimuli

    Returns:
    --------
    audio_files : list
        Sorted paths of audio files
    """
    stim_path = Path(stim_dir)
    if not stim_path.is_dir():
        raise FileNotFoundError(f"Stimulus directory not found: {stim_dir}")

    audio_files = [str(f) for f in stim_path.iterdir()
                   if f.is_file() and f.suffix.lower() in AUDIO_EXTENSIONS]

    return sorted(audio_files)


def load_audio(path: str) -> Tuple[np.ndarray, int]:
    """
    Read an audio file

    Returns:
    --------
    samples : np.ndarray
        Shape (n_frames, n_channels)
    rate : int
        Native sample rate
    """
    samples, rate = sf.read(path, always_2d=True)
    return samples, rate


def load_stimuli(audio_files: Sequence[str]) -> Dict[str, np.ndarray]:
    """
    Read every candidate stimulus, keyed by file name in input order

    Sample rates are not checked here; matching assumes 44.1 kHz.
    """
    stimuli = {}
    for path in audio_files:
        samples, _ = load_audio(path)
        stimuli[os.path.basename(path)] = samples

    return stimuli
