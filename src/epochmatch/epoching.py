"""
EEG Epoching Module

Segments a continuous recording into variable-duration trial epochs.
A trial runs from an onset event to the offset event that immediately
follows it in the filtered event stream, and is rejected when a boundary
event sits too close before the onset or after the offset.
"""

import numbers
import numpy as np
import pandas as pd
from typing import Dict, Iterator, List, NamedTuple, Tuple
from .events import filter_marker_events, is_boundary, validate_event_table

# Samples of context kept before the onset and after the offset
EPOCH_BUFFER = 200

ADDED = 'added'
INVALID = 'invalid'
REJECTED_NEAR_BOUNDARY = 'rejected_near_boundary'


class Epoch(NamedTuple):
    samples: np.ndarray
    type_label: str


class ScanWindow(NamedTuple):
    prev_boundary: pd.Series
    prev: pd.Series
    curr: pd.Series
    after_boundary: pd.Series


def iter_scan_windows(events: pd.DataFrame) -> Iterator[ScanWindow]:
    """
    Yield every window of four consecutive events

    Every event except the first two and the last one is visited once as
    the current event, so a stream of n events yields max(n - 3, 0) windows.
    """
    rows = [row for _, row in events.iterrows()]

    for i in range(2, len(rows) - 1):
        yield ScanWindow(rows[i - 2], rows[i - 1], rows[i], rows[i + 1])


def is_complete_trial(window: ScanWindow, onset_marker: str, offset_marker: str) -> bool:
    """True if the current event is an offset directly preceded by an onset"""
    return offset_marker in window.curr['label'] and onset_marker in window.prev['label']


def is_far_from_boundary(window: ScanWindow, min_boundary_distance: float) -> bool:
    """
    Check the distance from the trial to its neighbouring boundary events

    Only the event directly before the onset and the event directly after
    the offset are considered. Each one that is a boundary must be strictly
    more than min_boundary_distance samples away.
    """
    if is_boundary(window.prev_boundary['label']):
        dist2bound = window.prev['latency'] - window.prev_boundary['latency']
        if not dist2bound > min_boundary_distance:
            return False

    if is_boundary(window.after_boundary['label']):
        dist2bound = window.after_boundary['latency'] - window.curr['latency']
        if not dist2bound > min_boundary_distance:
            return False

    return True


def classify_window(window: ScanWindow, min_boundary_distance: float,
                    onset_marker: str, offset_marker: str) -> str:
    """
    Decide the outcome of a single scan window

    Returns one of ADDED, INVALID or REJECTED_NEAR_BOUNDARY.
    """
    if not is_complete_trial(window, onset_marker, offset_marker):
        return INVALID

    if not is_far_from_boundary(window, min_boundary_distance):
        return REJECTED_NEAR_BOUNDARY

    return ADDED


def extract_epoch(data: np.ndarray, onset_latency: int, offset_latency: int,
                  buffer: int = EPOCH_BUFFER) -> np.ndarray:
    """
    Slice one trial out of the recording, with buffer samples on either side

    Parameters:
    -----------
    data : np.ndarray
        Recording, shape (n_channels, n_times)
    onset_latency : int
        Sample index of the onset event
    offset_latency : int
        Sample index of the offset event
    buffer : int
        Samples kept before the onset and after the offset

    Returns:
    --------
    samples : np.ndarray
        Shape (n_channels, offset - onset + 2 * buffer + 1)
    """
    trial_start = int(onset_latency) - buffer
    trial_end = int(offset_latency) + buffer
    n_times = data.shape[1]

    if trial_start < 0 or trial_end >= n_times:
        raise IndexError(
            f"Epoch samples {trial_start}..{trial_end} fall outside the recording "
            f"(0..{n_times - 1})"
        )

    # Copy so epochs never alias the recording or each other
    return data[:, trial_start:trial_end + 1].copy()


def validate_segmentation_inputs(min_boundary_distance, onset_marker: str,
                                 offset_marker: str, data: np.ndarray) -> None:
    """
    Reject malformed segmentation parameters before any work is done
    """
    if (isinstance(min_boundary_distance, bool)
            or not isinstance(min_boundary_distance, numbers.Real)
            or not min_boundary_distance > 0):
        raise ValueError(
            f"min_boundary_distance must be a positive scalar, got {min_boundary_distance!r}"
        )

    for name, marker in (('onset_marker', onset_marker), ('offset_marker', offset_marker)):
        if not isinstance(marker, str) or not marker:
            raise ValueError(f"{name} must be a non-empty string, got {marker!r}")

    if not isinstance(data, np.ndarray) or data.ndim != 2:
        raise ValueError("Recording data must be a 2-D array (n_channels, n_times)")


def segment_epochs(events: pd.DataFrame, min_boundary_distance: float,
                   onset_marker: str, offset_marker: str,
                   data: np.ndarray) -> Tuple[List[Epoch], Dict[str, int]]:
    """
    Epoch a recording into trials of variable duration

    The event table is first reduced to onset, offset and boundary events.
    A trial is kept when an offset event directly follows an onset event
    and neither neighbouring boundary is within min_boundary_distance samples.

    Parameters:
    -----------
    events : pd.DataFrame
        Event table with 'label' and 'latency' columns, in temporal order
    min_boundary_distance : float
        Minimum distance (samples) to a neighbouring boundary event
    onset_marker : str
        Substring identifying onset events
    offset_marker : str
        Substring identifying offset events
    data : np.ndarray
        Recording, shape (n_channels, n_times)

    Returns:
    --------
    epochs : list of Epoch
        Accepted trials in scan order; type_label is the onset event label.
        Each spans EPOCH_BUFFER samples before the onset to EPOCH_BUFFER
        samples after the offset and owns its samples
    counts : dict
        Number of windows 'added', 'invalid' and 'rejected_near_boundary'
    """
    validate_event_table(events)
    validate_segmentation_inputs(min_boundary_distance, onset_marker, offset_marker, data)

    marker_events = filter_marker_events(events, onset_marker, offset_marker)

    epochs = []
    counts = {ADDED: 0, INVALID: 0, REJECTED_NEAR_BOUNDARY: 0}

    for window in iter_scan_windows(marker_events):
        outcome = classify_window(window, min_boundary_distance, onset_marker, offset_marker)
        counts[outcome] += 1

        if outcome == ADDED:
            samples = extract_epoch(data, window.prev['latency'], window.curr['latency'])
            epochs.append(Epoch(samples, window.prev['label']))

    return epochs, counts


def create_epochs_summary(epochs: List[Epoch]) -> pd.DataFrame:
    """
    Create summary statistics for epochs

    Parameters:
    -----------
    epochs : list of Epoch
        Segmented trials

    Returns:
    --------
    summary : pd.DataFrame
        One row per trial type with epoch count and duration in samples
    """
    if not epochs:
        return pd.DataFrame(columns=['type_label', 'n_epochs', 'mean_samples',
                                     'min_samples', 'max_samples'])

    widths = pd.DataFrame({
        'type_label': [epoch.type_label for epoch in epochs],
        'n_samples': [epoch.samples.shape[1] for epoch in epochs],
    })

    summary = widths.groupby('type_label', sort=False)['n_samples'].agg(
        n_epochs='count',
        mean_samples='mean',
        min_samples='min',
        max_samples='max',
    ).reset_index()

    return summary
