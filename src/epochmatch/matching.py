"""
Stimulus Matching Module

Identifies which audio stimulus was presented in a trial by aligning the
StimTrack channel recorded with the EEG against every candidate audio file.
Candidates are resampled to the EEG rate, normalised, and scored by the best
Pearson correlation found over all alignments of the shorter signal inside
the longer one.
"""

import numpy as np
import pandas as pd
from math import gcd
from scipy import signal
from typing import Dict, List, Optional, Sequence, Tuple, Union
from .epoching import Epoch
from .events import filter_candidates_by_trial_type

TRACK_RATE = 500
AUDIO_RATE = 44100


def normalize_waveform(x: np.ndarray) -> np.ndarray:
    """
    Remove the mean and scale to a peak absolute amplitude of 1

    Parameters:
    -----------
    x : np.ndarray
        1-D signal

    Returns:
    --------
    normalized : np.ndarray
        Mean-removed, peak-normalised copy of x
    """
    x = np.asarray(x, dtype=np.float64).ravel()
    if x.size == 0:
        raise ValueError("Cannot normalise an empty signal")

    # Centring a constant signal leaves rounding residue, so test the range first
    if not np.ptp(x) > 0:
        raise ValueError("Cannot normalise a signal with zero peak amplitude")

    x = x - x.mean()
    peak = np.max(np.abs(x))
    if not peak > 0:
        raise ValueError("Cannot normalise a signal with zero peak amplitude")

    return x / peak


def reduce_channels(wav: np.ndarray) -> np.ndarray:
    """
    Reduce audio samples to a single channel

    2-D input is laid out (n_frames, n_channels) as returned by soundfile;
    the first channel is kept.
    """
    wav = np.asarray(wav, dtype=np.float64)
    if wav.ndim == 1:
        return wav
    if wav.ndim == 2:
        return wav[:, 0]
    raise ValueError(f"Audio samples must be 1-D or 2-D, got {wav.ndim} dimensions")


def resample_candidate(wav: np.ndarray, orig_rate: int = AUDIO_RATE,
                       target_rate: int = TRACK_RATE) -> np.ndarray:
    """
    Resample audio to the StimTrack rate with a polyphase filter
    """
    up, down = int(target_rate), int(orig_rate)
    factor = gcd(up, down)
    return signal.resample_poly(reduce_channels(wav), up // factor, down // factor)


def prepare_candidate(wav: np.ndarray, orig_rate: int = AUDIO_RATE,
                      target_rate: int = TRACK_RATE) -> np.ndarray:
    """
    Resample and normalise one candidate audio signal

    Parameters:
    -----------
    wav : np.ndarray
        Raw audio samples at orig_rate
    orig_rate : int
        Native audio sample rate
    target_rate : int
        StimTrack sample rate

    Returns:
    --------
    candidate : np.ndarray
        Normalised waveform at target_rate
    """
    resampled = resample_candidate(wav, orig_rate, target_rate)
    if resampled.size == 0:
        raise ValueError("Candidate audio is empty after resampling")

    return normalize_waveform(resampled)


def window_correlations(track: np.ndarray, candidate: np.ndarray) -> np.ndarray:
    """
    Pearson correlation at every alignment of the shorter signal in the longer

    The shorter of the two signals stays whole and a window of the same
    length slides over the longer one, one sample at a time. Window means
    and variances come from cumulative sums and the cross term from a single
    correlation pass, so each offset costs no full recomputation.

    Parameters:
    -----------
    track : np.ndarray
        StimTrack waveform
    candidate : np.ndarray
        Candidate stimulus waveform at the same rate

    Returns:
    --------
    coefficients : np.ndarray
        One coefficient per offset, abs(len(track) - len(candidate)) + 1
        values. Offsets where either signal has zero variance are NaN.
    """
    track = np.asarray(track, dtype=np.float64).ravel()
    candidate = np.asarray(candidate, dtype=np.float64).ravel()

    if track.size == 0 or candidate.size == 0:
        raise ValueError("Cannot correlate an empty signal")

    if candidate.size >= track.size:
        short, long = track, candidate
    else:
        short, long = candidate, track

    eps = np.finfo(np.float64).eps
    m = short.size
    short_dev = short - short.mean()
    short_ss = np.dot(short_dev, short_dev)

    # Pearson is shift invariant; centring keeps the running sums small
    long = long - long.mean()
    cross = signal.correlate(long, short_dev, mode='valid')

    csum = np.concatenate(([0.0], np.cumsum(long)))
    csum2 = np.concatenate(([0.0], np.cumsum(long * long)))
    win_sum = csum[m:] - csum[:-m]
    win_sq = csum2[m:] - csum2[:-m]
    win_ss = win_sq - win_sum * win_sum / m

    # Variance below the rounding error of the running sums marks a constant window
    window_tol = long.size * eps * csum2[-1]
    short_tol = m * eps * np.dot(short, short)
    degenerate = (win_ss <= window_tol) | (short_ss <= short_tol)

    with np.errstate(divide='ignore', invalid='ignore'):
        coefficients = cross / np.sqrt(np.where(degenerate, 1.0, win_ss) * short_ss)

    coefficients = np.clip(coefficients, -1.0, 1.0)
    coefficients[degenerate] = np.nan

    return coefficients


def max_window_correlation(track: np.ndarray, candidate: np.ndarray) -> float:
    """
    Best Pearson correlation over all alignments

    Returns -inf when no alignment has a defined coefficient.
    """
    coefficients = window_correlations(track, candidate)
    if np.all(np.isnan(coefficients)):
        return -np.inf

    return float(np.nanmax(coefficients))


def score_candidates(track: np.ndarray, candidates: Sequence[np.ndarray]) -> np.ndarray:
    """Score already prepared candidates against a track, in input order"""
    return np.array([max_window_correlation(track, c) for c in candidates], dtype=np.float64)


def match_trial_to_stimuli(track: np.ndarray, candidates: Sequence[np.ndarray],
                           orig_rate: int = AUDIO_RATE,
                           target_rate: int = TRACK_RATE) -> np.ndarray:
    """
    Compute the maximum sliding-window correlation between a track and each candidate

    Parameters:
    -----------
    track : np.ndarray
        StimTrack waveform at target_rate, mean-removed and normalised
    candidates : sequence of np.ndarray
        Raw audio sample arrays at orig_rate
    orig_rate : int
        Native audio sample rate
    target_rate : int
        StimTrack sample rate

    Returns:
    --------
    scores : np.ndarray
        One score per candidate, same order; empty for an empty pool
    """
    track = np.asarray(track, dtype=np.float64)
    if track.ndim != 1 or track.size == 0:
        raise ValueError("StimTrack must be a non-empty 1-D signal")

    prepared = [prepare_candidate(wav, orig_rate, target_rate) for wav in candidates]
    return score_candidates(track, prepared)


def select_best_match(scores: Sequence[float]) -> Tuple[int, float]:
    """
    Pick the highest scoring candidate

    Ties go to the first candidate in input order. NaN scores never win.

    Returns:
    --------
    best : tuple
        (best_index, best_score)
    """
    scores = np.asarray(scores, dtype=np.float64)
    if scores.size == 0:
        raise ValueError("No candidate scores to select from")

    ranked = np.where(np.isnan(scores), -np.inf, scores)
    best_index = int(np.argmax(ranked))

    return best_index, float(scores[best_index])


def extract_stim_track(epoch: Union[Epoch, np.ndarray], channel: int) -> np.ndarray:
    """
    Take the StimTrack channel from an epoch and normalise it

    Parameters:
    -----------
    epoch : Epoch or np.ndarray
        Trial samples, shape (n_channels, n_times)
    channel : int
        0-based index of the StimTrack channel

    Returns:
    --------
    track : np.ndarray
        Mean-removed, peak-normalised StimTrack
    """
    samples = epoch.samples if isinstance(epoch, Epoch) else np.asarray(epoch)
    n_channels = samples.shape[0]

    if not 0 <= channel < n_channels:
        raise IndexError(f"StimTrack channel {channel} out of range for {n_channels} channels")

    return normalize_waveform(samples[channel, :])


def match_epochs_to_stimuli(epochs: List[Epoch], stimuli: Dict[str, np.ndarray],
                            stim_channel: int, prefilter: bool = False,
                            n_trials: Optional[int] = None,
                            orig_rate: int = AUDIO_RATE,
                            target_rate: int = TRACK_RATE) -> pd.DataFrame:
    """
    Match every epoch to its most likely stimulus

    Each stimulus is resampled and normalised once and reused for all trials.

    Parameters:
    -----------
    epochs : list of Epoch
        Segmented trials
    stimuli : dict
        Stimulus name -> raw audio samples, in candidate order
    stim_channel : int
        0-based index of the StimTrack channel
    prefilter : bool
        Restrict each trial's candidates to stimuli matching its trial type
    n_trials : int, optional
        Only match the first n_trials epochs
    orig_rate : int
        Native audio sample rate
    target_rate : int
        StimTrack sample rate

    Returns:
    --------
    matches : pd.DataFrame
        Columns: trial, trial_type, best_file, best_score, n_candidates
    """
    prepared = {name: prepare_candidate(wav, orig_rate, target_rate)
                for name, wav in stimuli.items()}
    names = list(prepared)

    if n_trials is not None:
        epochs = epochs[:n_trials]

    rows = []
    for t, epoch in enumerate(epochs):
        track = extract_stim_track(epoch, stim_channel)

        candidates = filter_candidates_by_trial_type(epoch.type_label, names) if prefilter else names

        if candidates:
            scores = score_candidates(track, [prepared[name] for name in candidates])
            best_index, best_score = select_best_match(scores)
            best_file = candidates[best_index]
        else:
            best_file, best_score = None, np.nan

        rows.append({
            'trial': t,
            'trial_type': epoch.type_label,
            'best_file': best_file,
            'best_score': best_score,
            'n_candidates': len(candidates),
        })

    # object dtype keeps None for trials left without candidates
    matches = pd.DataFrame({
        'trial': pd.Series([row['trial'] for row in rows], dtype=np.int64),
        'trial_type': pd.Series([row['trial_type'] for row in rows], dtype=object),
        'best_file': pd.Series([row['best_file'] for row in rows], dtype=object),
        'best_score': pd.Series([row['best_score'] for row in rows], dtype=np.float64),
        'n_candidates': pd.Series([row['n_candidates'] for row in rows], dtype=np.int64),
    })

    return matches
