"""
Tests for sliding-window correlation stimulus matching
"""

import numpy as np
import pytest

from epochmatch.epoching import Epoch
from epochmatch.matching import (
    AUDIO_RATE,
    extract_stim_track,
    match_epochs_to_stimuli,
    match_trial_to_stimuli,
    max_window_correlation,
    normalize_waveform,
    prepare_candidate,
    resample_candidate,
    select_best_match,
    window_correlations,
)


def make_audio(rng, seconds: float) -> np.ndarray:
    return rng.standard_normal(int(AUDIO_RATE * seconds))


def reference_correlations(track: np.ndarray, candidate: np.ndarray) -> np.ndarray:
    """Pearson coefficient per offset, recomputed from scratch with corrcoef"""
    if len(candidate) >= len(track):
        short, long = track, candidate
    else:
        short, long = candidate, track
    m = len(short)
    return np.array([np.corrcoef(long[j:j + m], short)[0, 1]
                     for j in range(len(long) - m + 1)])


def test_normalize_waveform():
    x = np.array([1.0, 3.0, 2.0, 6.0])

    normalized = normalize_waveform(x)

    assert normalized.mean() == pytest.approx(0.0)
    assert np.max(np.abs(normalized)) == pytest.approx(1.0)


@pytest.mark.parametrize('x', [np.zeros(100), np.full(50, 3.2), np.array([])])
def test_normalize_degenerate_signal(x):
    with pytest.raises(ValueError):
        normalize_waveform(x)


def test_resample_to_track_rate():
    rng = np.random.default_rng(1)

    resampled = resample_candidate(make_audio(rng, 1.0))

    assert resampled.shape == (500,)


def test_multichannel_audio_uses_first_channel():
    rng = np.random.default_rng(2)
    left = make_audio(rng, 0.5)
    stereo = np.column_stack([left, make_audio(rng, 0.5)])

    np.testing.assert_allclose(resample_candidate(stereo), resample_candidate(left))


def test_window_correlations_match_corrcoef():
    rng = np.random.default_rng(3)
    track = rng.standard_normal(120)
    candidate = rng.standard_normal(400)

    coefficients = window_correlations(track, candidate)

    assert coefficients.shape == (281,)
    np.testing.assert_allclose(coefficients, reference_correlations(track, candidate), atol=1e-9)


def test_equal_lengths_give_single_alignment():
    rng = np.random.default_rng(4)
    track = rng.standard_normal(300)
    candidate = rng.standard_normal(300)

    coefficients = window_correlations(track, candidate)

    assert coefficients.shape == (1,)
    assert coefficients[0] == pytest.approx(np.corrcoef(track, candidate)[0, 1], abs=1e-9)


def test_constant_windows_are_skipped():
    track = np.array([1.0, 2.0, 3.0])
    candidate = np.array([0.0, 0.0, 0.0, 0.0, 1.0, 2.0, 3.0])

    coefficients = window_correlations(track, candidate)

    assert np.isnan(coefficients[0])
    assert coefficients[-1] == pytest.approx(1.0)
    assert max_window_correlation(track, candidate) == pytest.approx(1.0)
    assert max_window_correlation(track, np.zeros(5)) == -np.inf


def test_matching_candidate_scores_one():
    rng = np.random.default_rng(5)
    candidates = [make_audio(rng, 2.0) for _ in range(3)]
    track = normalize_waveform(3.0 * prepare_candidate(candidates[1])[150:750] + 0.5)

    scores = match_trial_to_stimuli(track, candidates)

    assert scores.shape == (3,)
    assert scores[1] == pytest.approx(1.0, abs=1e-6)
    assert select_best_match(scores) == (1, pytest.approx(scores[1]))
    assert np.all(scores[[0, 2]] < 0.5)


def test_shorter_signal_stays_whole():
    """Whichever of track and candidate is shorter is held fixed"""
    rng = np.random.default_rng(6)
    short_audio = make_audio(rng, 1.0)
    long_audio = make_audio(rng, 4.0)
    track = normalize_waveform(rng.standard_normal(900))

    scores = match_trial_to_stimuli(track, [short_audio, long_audio])

    short_candidate = prepare_candidate(short_audio)
    long_candidate = prepare_candidate(long_audio)
    assert len(short_candidate) < len(track) < len(long_candidate)

    expected = [np.max(reference_correlations(track, short_candidate)),
                np.max(reference_correlations(track, long_candidate))]
    np.testing.assert_allclose(scores, expected, atol=1e-9)


def test_candidate_embedded_in_longer_track():
    rng = np.random.default_rng(7)
    audio = make_audio(rng, 1.0)
    candidate = prepare_candidate(audio)
    track = normalize_waveform(np.concatenate([
        0.1 * rng.standard_normal(300), candidate, 0.1 * rng.standard_normal(200)
    ]))

    coefficients = window_correlations(track, candidate)

    assert coefficients.shape == (501,)
    assert np.nanargmax(coefficients) == 300
    assert match_trial_to_stimuli(track, [audio])[0] == pytest.approx(1.0, abs=1e-6)


def test_empty_candidate_pool():
    scores = match_trial_to_stimuli(np.linspace(-1.0, 1.0, 100), [])

    assert scores.shape == (0,)


def test_silent_candidate_is_fatal():
    rng = np.random.default_rng(8)
    with pytest.raises(ValueError):
        match_trial_to_stimuli(normalize_waveform(rng.standard_normal(200)),
                               [make_audio(rng, 1.0), np.zeros(AUDIO_RATE)])


def test_select_best_match_is_stable():
    assert select_best_match([0.2, 0.9, 0.9, 0.1]) == (1, 0.9)
    assert select_best_match([np.nan, 0.3]) == (1, 0.3)

    with pytest.raises(ValueError):
        select_best_match([])


def test_extract_stim_track():
    samples = np.vstack([np.zeros(50), np.arange(50, dtype=float)])

    track = extract_stim_track(Epoch(samples, 'Onset'), 1)

    assert track.mean() == pytest.approx(0.0)
    assert np.max(np.abs(track)) == pytest.approx(1.0)

    with pytest.raises(IndexError):
        extract_stim_track(samples, 2)

    with pytest.raises(ValueError):
        extract_stim_track(samples, 0)


def test_flat_stim_track_is_fatal():
    """A constant non-zero StimTrack is a zero-range signal, not a full-scale track"""
    samples = np.vstack([np.arange(50, dtype=float), np.full(50, 3.2)])

    with pytest.raises(ValueError):
        extract_stim_track(samples, 1)


def test_window_correlations_with_large_offset():
    """A varying window riding on a large DC level still gets its coefficient"""
    rng = np.random.default_rng(10)
    track = rng.standard_normal(120)
    candidate = 1e6 + rng.standard_normal(400)

    coefficients = window_correlations(track, candidate)

    assert not np.any(np.isnan(coefficients))
    np.testing.assert_allclose(coefficients, reference_correlations(track, candidate), atol=1e-6)


def test_match_epochs_to_stimuli():
    rng = np.random.default_rng(9)
    stimuli = {
        'stim_int_01_eng.wav': make_audio(rng, 2.0),
        'stim_bor_02_neu.wav': make_audio(rng, 2.0),
        'stim_int_03_neu.wav': make_audio(rng, 2.0),
    }

    def make_epoch(name, label):
        track = prepare_candidate(stimuli[name])[100:800]
        return Epoch(np.vstack([rng.standard_normal(700), track]), label)

    epochs = [
        make_epoch('stim_bor_02_neu.wav', 'Boring_Neutral_Onset'),
        make_epoch('stim_int_01_eng.wav', 'Interesting_Engaging_Onset'),
        make_epoch('stim_int_03_neu.wav', 'Boring_Engaging_Onset'),
    ]

    matches = match_epochs_to_stimuli(epochs, stimuli, stim_channel=1)

    assert list(matches['best_file']) == ['stim_bor_02_neu.wav', 'stim_int_01_eng.wav',
                                          'stim_int_03_neu.wav']
    np.testing.assert_allclose(matches['best_score'], 1.0, atol=1e-6)
    assert list(matches['n_candidates']) == [3, 3, 3]

    filtered = match_epochs_to_stimuli(epochs, stimuli, stim_channel=1, prefilter=True)

    assert list(filtered['n_candidates']) == [1, 1, 0]
    assert filtered.loc[1, 'best_file'] == 'stim_int_01_eng.wav'
    assert filtered.loc[2, 'best_file'] is None
    assert filtered['best_file'].dtype == object
    assert np.isnan(filtered.loc[2, 'best_score'])

    first_only = match_epochs_to_stimuli(epochs, stimuli, stim_channel=1, n_trials=1)

    assert len(first_only) == 1
