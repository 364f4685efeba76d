"""Classify command for mewt CLI.

Reads a PCM WAV file (mixed down to mono) or explicit feature values and
prints the classified emotion.
"""

import sys
import wave

import numpy as np

from mewt.emotions import classify_emotion, evaluate_rules, get_emotion
from mewt.errors import InvalidInputError
from mewt.features import extract_features
from mewt.types import FeatureVector

_DTYPES = {1: np.uint8, 2: np.int16, 4: np.int32}


def load_wav(path: str) -> np.ndarray:
    """Load a PCM WAV file as mono float64 samples in [-1, 1].

    Raises:
        InvalidInputError: For unsupported sample widths.
    """
    with wave.open(path, "rb") as wav:
        width = wav.getsampwidth()
        channels = wav.getnchannels()
        raw = wav.readframes(wav.getnframes())

    dtype = _DTYPES.get(width)
    if dtype is None:
        raise InvalidInputError(f"Unsupported WAV sample width: {width * 8} bits")

    samples = np.frombuffer(raw, dtype=dtype).astype(np.float64)
    if width == 1:
        samples = (samples - 128.0) / 128.0
    else:
        samples /= float(2 ** (8 * width - 1))
    if channels > 1:
        samples = samples.reshape(-1, channels).mean(axis=1)
    return samples


def run_classify(args) -> int:
    """Classify the emotion of an audio clip or explicit feature values."""
    if args.features:
        features = FeatureVector(*args.features)
    elif args.path:
        try:
            features = extract_features(load_wav(args.path))
        except (InvalidInputError, wave.Error, OSError) as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
    else:
        print("Error: give a WAV path or --features", file=sys.stderr)
        return 2

    print("[Features]")
    for name, value in features.to_dict().items():
        print(f"  {name:<20} {value:.6g}")

    if args.show_all:
        print("\n[Matched Rules]")
        matched = [(rule, conf) for rule, conf in evaluate_rules(features) if conf > 0]
        if not matched:
            print("  (none)")
        for rule, conf in matched:
            print(f"  {rule.emotion_id:<16} {rule.category_id:<10} {conf:.2f}")

    print("\n[Emotion]")
    result = classify_emotion(features, min_confidence=args.min_confidence)
    if result is None:
        print("  No confident emotion")
        return 0

    emotion = get_emotion(result.emotion_id)
    print(f"  {result.text} ({result.category_id}, confidence {result.confidence:.2f})")
    if emotion is not None:
        print(f"  {emotion.description}")
    return 0
