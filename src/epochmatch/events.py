"""
EEG Event Processing Module

Builds the event table used for epoching, filters it down to trial markers
and boundary events, and parses trial-type labels and stimulus filenames
into the semantics/prosody codes used to narrow the candidate audio pool.
"""

import numpy as np
import pandas as pd
from pathlib import Path
from typing import Dict, List, Sequence, Tuple, Union

BOUNDARY_LABEL = 'boundary'


def create_event_table(events: Sequence[Tuple[str, int]]) -> pd.DataFrame:
    """
    Create an event table from (label, latency) pairs

    Parameters:
    -----------
    events : sequence of tuple
        (label, latency) pairs in temporal order

    Returns:
    --------
    event_table : pd.DataFrame
        Table with 'label' and 'latency' columns
    """
    labels = [str(label) for label, _ in events]
    latencies = np.array([latency for _, latency in events], dtype=np.int64)

    return pd.DataFrame({'label': labels, 'latency': latencies})


def validate_event_table(events: pd.DataFrame) -> None:
    """
    Check that an event table has the columns the epoching scan reads
    """
    if not isinstance(events, pd.DataFrame):
        raise ValueError(f"Events must be a DataFrame, got {type(events).__name__}")

    missing = [col for col in ('label', 'latency') if col not in events.columns]
    if missing:
        raise ValueError(f"Event table is missing columns: {missing}")

    if len(events) and (events['latency'] < 0).any():
        raise ValueError("Event latencies must be non-negative sample indices")


def is_boundary(label: str) -> bool:
    """True if the label marks a discontinuity in the recording"""
    return BOUNDARY_LABEL in label


def filter_marker_events(events: pd.DataFrame, onset_marker: str,
                         offset_marker: str) -> pd.DataFrame:
    """
    Keep only onset, offset and boundary events

    Matching is by substring, so an onset marker of 'StimOn' keeps a
    label such as 'study_aa_StimOn'.

    Parameters:
    -----------
    events : pd.DataFrame
        Event table with 'label' and 'latency' columns
    onset_marker : str
        Substring identifying trial onset events
    offset_marker : str
        Substring identifying trial offset events

    Returns:
    --------
    filtered : pd.DataFrame
        Filtered event table, re-indexed from 0, order preserved
    """
    labels = events['label'].astype(str)

    keep = np.zeros(len(events), dtype=bool)
    for substring in (onset_marker, offset_marker, BOUNDARY_LABEL):
        keep |= labels.str.contains(substring, regex=False).to_numpy()

    return events.loc[keep].reset_index(drop=True)


def parse_trial_type(label: str) -> Dict[str, str]:
    """
    Parse a trial-type label into semantics and prosody codes

    Labels look like 'Interesting_Engaging_Onset'. The first field decides
    the semantics ('int' for Interesting, 'bor' otherwise) and the second
    the prosody ('eng' for Engaging, 'neu' otherwise).

    Parameters:
    -----------
    label : str
        Trial-type label taken from the onset event

    Returns:
    --------
    conditions : dict
        {'semantics': str, 'prosody': str}
    """
    parts = str(label).split('_')
    if len(parts) < 2:
        raise ValueError(f"Cannot parse trial type from label: {label!r}")

    semantics = 'int' if parts[0] == 'Interesting' else 'bor'
    prosody = 'eng' if parts[1] == 'Engaging' else 'neu'

    return {'semantics': semantics, 'prosody': prosody}


def parse_stimulus_name(name: Union[str, Path]) -> Dict[str, str]:
    """
    Parse a stimulus filename into semantics and prosody codes

    The semantics code is the second and the prosody code the fourth
    underscore-separated field of the file stem, e.g.
    'stim_int_07_eng.wav' -> {'semantics': 'int', 'prosody': 'eng'}.
    """
    fields = Path(name).stem.split('_')
    if len(fields) < 4:
        raise ValueError(f"Cannot parse stimulus metadata from filename: {name}")

    return {'semantics': fields[1], 'prosody': fields[3]}


def filter_candidates_by_trial_type(label: str,
                                    names: Sequence[Union[str, Path]]) -> List[Union[str, Path]]:
    """
    Narrow the candidate stimulus pool to files matching the trial type

    Parameters:
    -----------
    label : str
        Trial-type label of the epoch
    names : sequence
        Candidate stimulus file names or paths

    Returns:
    --------
    candidates : list
        Names whose semantics and prosody match the trial, in input order
    """
    conditions = parse_trial_type(label)

    candidates = []
    for name in names:
        stim = parse_stimulus_name(name)
        if stim['semantics'] == conditions['semantics'] and stim['prosody'] == conditions['prosody']:
            candidates.append(name)

    return candidates


def count_marker_events(events: pd.DataFrame, onset_marker: str,
                        offset_marker: str) -> Dict[str, int]:
    """
    Count the events whose labels contain each marker

    Returns:
    --------
    counts : dict
        {'onset': int, 'offset': int, 'boundary': int}
    """
    labels = events['label'].astype(str)

    return {
        'onset': int(labels.str.contains(onset_marker, regex=False).sum()),
        'offset': int(labels.str.contains(offset_marker, regex=False).sum()),
        'boundary': int(labels.str.contains(BOUNDARY_LABEL, regex=False).sum()),
    }
