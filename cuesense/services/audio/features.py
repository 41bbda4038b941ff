"""Acoustic feature extraction.

Frame-level spectral and energy features from librosa, summarised into one
vector per track. Pure and deterministic; for silence it returns near-zero
features instead of raising.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

import librosa
import numpy as np

from cuesense.services.audio.decoder import load_audio
from cuesense.services.audio.types import AudioAnalysis, FeatureVector

logger = logging.getLogger("cuesense.audio.features")


# ── spectral helpers ──────────────────────────────────────────────────────────

def _pad_to_frame(y: np.ndarray, frame_length: int) -> np.ndarray:
    if len(y) < frame_length:
        return np.pad(y, (0, frame_length - len(y)))
    return y


def _magnitude_frames(
    y: np.ndarray,
    fft_size: int,
    hop: int,
    max_frames: int,
) -> np.ndarray:
    """Hann-windowed magnitude spectrogram, shape (fft_size // 2 + 1, frames)."""
    mags = np.abs(librosa.stft(y, n_fft=fft_size, hop_length=hop, center=False))
    if mags.shape[1] > max_frames:
        # Long tracks: sample evenly instead of reading every frame
        picks = np.linspace(0, mags.shape[1] - 1, max_frames).astype(int)
        mags = mags[:, picks]
    return mags


def _spectral_flux(magnitudes: np.ndarray) -> float:
    if magnitudes.shape[1] < 2:
        return 0.0
    diffs = np.diff(magnitudes, axis=1)
    return float(np.sqrt(np.mean(np.sum(diffs ** 2, axis=0))))


def _band_ratios(
    magnitudes: np.ndarray,
    low_end: float,
    mid_end: float,
) -> Tuple[float, float, float]:
    """Split the bins into low / mid / high and normalise to sum 1."""
    mean_mag = magnitudes.mean(axis=1)
    n_bins = len(mean_mag)
    low_idx = int(n_bins * low_end)
    mid_idx = int(n_bins * mid_end)

    low = float(mean_mag[:low_idx].sum())
    mid = float(mean_mag[low_idx:mid_idx].sum())
    high = float(mean_mag[mid_idx:].sum())
    total = low + mid + high
    if total <= 0:
        return 0.0, 0.0, 0.0
    return low / total, mid / total, high / total


# ── main class ────────────────────────────────────────────────────────────────

class FeatureExtractor:
    """Converts decoded samples into a :class:`FeatureVector`.

    Usage::

        fx = FeatureExtractor()
        vector = fx.extract(samples, 44100)
        analysis = fx.extract_file("cue.wav")   # decode + extract
    """

    FFT_SIZE = 2048
    FRAME_HOP = 1024
    MAX_FRAMES = 1024

    ROLLOFF_FRACTION = 0.85
    LOW_BAND_END = 0.10    # fraction of bins
    MID_BAND_END = 0.50

    ENVELOPE_HOP_SEC = 0.01
    ENVELOPE_WINDOW_HOPS = 4
    MIN_BPM = 40.0
    MAX_BPM = 240.0        # sets the minimum autocorrelation lag

    #: Tempo reported when no periodicity is found (silence, very short input)
    SILENT_TEMPO_BPM = 1.0

    #: Harmonic ratio = max(0, 1 - ZCR * HARMONIC_ZCR_SCALE)
    HARMONIC_ZCR_SCALE = 10.0

    def extract(self, samples: np.ndarray, sample_rate: int) -> FeatureVector:
        """Compute features for a mono buffer (2-D input is averaged over axis 0)."""
        if sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {sample_rate}")

        y = np.asarray(samples, dtype=np.float64)
        if y.ndim > 1:
            y = y.mean(axis=0)
        y = np.nan_to_num(y)

        if y.size == 0:
            return self._degenerate()

        framed = _pad_to_frame(y, self.FFT_SIZE)
        frame_rms = librosa.feature.rms(
            y=framed, frame_length=self.FFT_SIZE, hop_length=self.FRAME_HOP, center=False,
        )[0]
        # Mean power over frames, back to an amplitude
        rms = float(np.sqrt(np.mean(frame_rms ** 2)))

        mags = _magnitude_frames(framed, self.FFT_SIZE, self.FRAME_HOP, self.MAX_FRAMES)
        centroid = float(np.mean(
            librosa.feature.spectral_centroid(S=mags, sr=sample_rate, n_fft=self.FFT_SIZE)[0]
        ))
        rolloff = float(np.mean(
            librosa.feature.spectral_rolloff(
                S=mags, sr=sample_rate, n_fft=self.FFT_SIZE, roll_percent=self.ROLLOFF_FRACTION,
            )[0]
        ))
        flux = _spectral_flux(mags)
        low, mid, high = _band_ratios(mags, self.LOW_BAND_END, self.MID_BAND_END)

        tempo, rhythm_strength = self._estimate_tempo(y, sample_rate)

        zcr = float(np.mean(
            librosa.feature.zero_crossing_rate(
                framed, frame_length=self.FFT_SIZE, hop_length=self.FRAME_HOP, center=False,
            )[0]
        ))
        harmonic = max(0.0, 1.0 - zcr * self.HARMONIC_ZCR_SCALE)

        return FeatureVector(
            spectral_centroid=centroid,
            spectral_rolloff=rolloff,
            spectral_flux=flux,
            rms_energy=rms,
            low_freq_energy=low,
            mid_freq_energy=mid,
            high_freq_energy=high,
            tempo=tempo,
            rhythm_strength=rhythm_strength,
            zero_crossing_rate=zcr,
            harmonic_ratio=harmonic,
        )

    def extract_file(
        self,
        path: Union[str, Path],
        sample_rate: Optional[int] = None,
    ) -> AudioAnalysis:
        """Decode ``path`` and extract its features.

        Raises:
            DecodeError: Propagated from the decoder for unusable audio.
        """
        decoded = load_audio(path, sample_rate=sample_rate)
        features = self.extract(decoded.samples, decoded.sample_rate)
        logger.info(
            "Extracted features for %s: tempo=%.1f rms=%.3f centroid=%.0f",
            Path(path).name, features.tempo, features.rms_energy, features.spectral_centroid,
        )
        return AudioAnalysis(
            features=features,
            duration_sec=decoded.duration_sec,
            sample_rate=decoded.sample_rate,
        )

    # ── internal ──────────────────────────────────────────────────────────────

    def _estimate_tempo(self, y: np.ndarray, sample_rate: int) -> Tuple[float, float]:
        """Autocorrelate the smoothed energy envelope; return (bpm, rhythm_strength)."""
        hop = max(1, int(sample_rate * self.ENVELOPE_HOP_SEC))
        envelope = librosa.feature.rms(
            y=y, frame_length=hop * self.ENVELOPE_WINDOW_HOPS, hop_length=hop,
        )[0]

        mean = float(envelope.mean())
        rhythm_strength = 0.0
        if mean > 0:
            rhythm_strength = float(min(max(envelope.std() / mean, 0.0), 1.0))

        hop_sec = hop / sample_rate
        min_lag = max(1, int(round(60.0 / (self.MAX_BPM * hop_sec))))
        max_lag = min(len(envelope) // 2, int(round(60.0 / (self.MIN_BPM * hop_sec))))
        if max_lag <= min_lag:
            return self.SILENT_TEMPO_BPM, rhythm_strength

        acf = librosa.autocorrelate(envelope - mean, max_size=max_lag + 1)
        if acf[0] <= 0:
            return self.SILENT_TEMPO_BPM, rhythm_strength

        best_lag = min_lag + int(np.argmax(acf[min_lag:max_lag + 1]))
        if acf[best_lag] <= 0:
            return self.SILENT_TEMPO_BPM, rhythm_strength

        return 60.0 / (best_lag * hop_sec), rhythm_strength

    def _degenerate(self) -> FeatureVector:
        zeros: Dict[str, float] = {
            "spectral_centroid": 0.0,
            "spectral_rolloff": 0.0,
            "spectral_flux": 0.0,
            "rms_energy": 0.0,
            "low_freq_energy": 0.0,
            "mid_freq_energy": 0.0,
            "high_freq_energy": 0.0,
            "rhythm_strength": 0.0,
            "zero_crossing_rate": 0.0,
        }
        return FeatureVector(tempo=self.SILENT_TEMPO_BPM, harmonic_ratio=1.0, **zeros)
