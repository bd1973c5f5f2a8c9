"""
Face comparison helpers around an external detection/embedding model.
"""
from typing import Optional, Protocol

import numpy as np


class FaceEmbedder(Protocol):
    """
    Anything that can find a single face in an image and embed it.

    Implementations wrap a face model (e.g. InsightFace, MobileFaceNet) and
    return ``None`` when no face is found.
    """

    def detect_and_embed(self, image) -> Optional[np.ndarray]:
        ...


def euclidean_distance(a: np.ndarray, b: np.ndarray) -> float:
    a = np.asarray(a, dtype=np.float32)
    b = np.asarray(b, dtype=np.float32)
    if a.shape != b.shape:
        raise ValueError(f"Embedding shapes differ: {a.shape} vs {b.shape}")
    return float(np.linalg.norm(a - b))


def match_confidence(a: np.ndarray, b: np.ndarray) -> float:
    """Confidence that two embeddings belong to the same face (1 - distance)."""
    return 1.0 - euclidean_distance(a, b)


def is_match(a: np.ndarray, b: np.ndarray, threshold: float = 0.6) -> bool:
    return match_confidence(a, b) > threshold
