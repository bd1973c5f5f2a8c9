"""
Client-side verification gate.

Drives one voter through capture -> embed -> compare -> mint -> cast. All
progress lives in an explicit ``GateContext``; what to do after a failure is
looked up in ``RETRY_POLICY`` by error code.
"""
import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import httpx
import numpy as np

from pollara.client.api import PollaraClient
from pollara.client.face import FaceEmbedder, match_confidence
from pollara.core.config import settings
from pollara.core.exceptions import (
    DoubleVoteAttempt,
    ErrorCode,
    FaceNotDetected,
    PollaraError,
    SignedReferenceStale,
)
from pollara.storage.object_storage import SignedReference


logger = logging.getLogger(__name__)


class GateState(str, enum.Enum):
    IDLE = "IDLE"
    REFERENCE_READY = "REFERENCE_READY"
    RETAKE = "RETAKE"
    VERIFIED = "VERIFIED"
    MINTING = "MINTING"
    CASTING = "CASTING"
    ACCEPTED = "ACCEPTED"
    # terminal: the ballot must no longer be presented as votable
    LOCKED = "LOCKED"
    FAILED = "FAILED"


# states after which the ballot is closed for this voter
CLOSED_STATES = frozenset({GateState.ACCEPTED, GateState.LOCKED})


class RetryAction(str, enum.Enum):
    REMINT = "REMINT"
    RETAKE = "RETAKE"
    REISSUE = "REISSUE"
    REPROMPT = "REPROMPT"
    REFRESH_REFERENCE = "REFRESH_REFERENCE"
    REGISTER = "REGISTER"
    ABANDON = "ABANDON"
    FAIL = "FAIL"


RETRY_POLICY: Dict[ErrorCode, RetryAction] = {
    ErrorCode.TOKEN_EXPIRED: RetryAction.REMINT,
    ErrorCode.FACE_NOT_DETECTED: RetryAction.RETAKE,
    ErrorCode.OTP_EXPIRED: RetryAction.REISSUE,
    ErrorCode.OTP_INVALID: RetryAction.REPROMPT,
    ErrorCode.SIGNED_REFERENCE_STALE: RetryAction.REFRESH_REFERENCE,
    ErrorCode.NOT_REGISTERED: RetryAction.REGISTER,
    ErrorCode.DOUBLE_VOTE_ATTEMPT: RetryAction.ABANDON,
    ErrorCode.TOKEN_INVALID: RetryAction.FAIL,
}


def next_action(error_code: Optional[ErrorCode]) -> RetryAction:
    """What a client should do after a failure with ``error_code``."""
    return RETRY_POLICY.get(error_code, RetryAction.FAIL)


class CaptureError(Exception):
    """The reference image could not be obtained or processed."""


@dataclass
class GateContext:
    state: GateState = GateState.IDLE
    reference: Optional[SignedReference] = None
    reference_embedding: Optional[np.ndarray] = None
    last_confidence: Optional[float] = None
    last_error: Optional[ErrorCode] = None
    cast_attempts: int = 0
    vote_id: Optional[str] = None
    history: List[GateState] = field(default_factory=list)


@dataclass
class CastResult:
    vote_id: str
    attempts: int


class VerificationGate:
    """State machine for a single face-verified cast."""

    def __init__(
        self,
        api: PollaraClient,
        embedder: FaceEmbedder,
        threshold: Optional[float] = None,
        max_cast_attempts: int = 3,
    ):
        self.api = api
        self.embedder = embedder
        self.threshold = settings.FACE_VERIFICATION_THRESHOLD if threshold is None else threshold
        self.max_cast_attempts = max_cast_attempts
        self.context = GateContext()

    @property
    def state(self) -> GateState:
        return self.context.state

    def _transition(self, state: GateState) -> None:
        logger.debug("Gate %s -> %s", self.context.state.value, state.value)
        self.context.history.append(self.context.state)
        self.context.state = state

    def _ensure_open(self) -> None:
        if self.context.state in CLOSED_STATES:
            logger.warning("Gate is %s, refusing to continue", self.context.state.value)
            raise DoubleVoteAttempt("This ballot is no longer votable")

    async def _embed(self, image) -> Optional[np.ndarray]:
        # model inference is CPU-bound and may take seconds
        return await asyncio.to_thread(self.embedder.detect_and_embed, image)

    async def _fetch(self, reference: SignedReference) -> bytes:
        try:
            return await self.api.fetch_image(reference.url)
        except httpx.HTTPError as e:
            raise SignedReferenceStale() from e

    async def _load_reference_image(self) -> bytes:
        reference = await self.api.get_face_reference()
        try:
            image = await self._fetch(reference)
        except SignedReferenceStale:
            # the cached grant may have lapsed early: re-derive exactly once
            logger.warning("Cached face reference unusable, forcing a fresh signature")
            reference = await self.api.get_face_reference(refresh=True)
            try:
                image = await self._fetch(reference)
            except SignedReferenceStale as e:
                raise CaptureError("Registered face image could not be fetched") from e

        self.context.reference = reference
        return image

    async def prepare(self) -> None:
        """
        Fetch and embed the registered face once.

        Raises:
            NotRegistered: the voter has no registered face
            CaptureError: the reference image is unusable
        """
        if self.context.reference_embedding is not None:
            return

        try:
            image = await self._load_reference_image()
        except PollaraError as e:
            self.context.last_error = e.error_code
            self._transition(GateState.FAILED)
            raise
        except CaptureError:
            self._transition(GateState.FAILED)
            raise

        embedding = await self._embed(image)
        if embedding is None:
            self._transition(GateState.FAILED)
            raise CaptureError("No face found in the registered image")

        self.context.reference_embedding = embedding
        self._transition(GateState.REFERENCE_READY)

    async def verify(self, live_frame) -> bool:
        """
        Compare a live capture with the registered face.

        Returns:
            True on a match. On a mismatch the gate moves to RETAKE and the
            next call reuses the already-embedded reference.

        Raises:
            FaceNotDetected: no face in the live frame (retake)
            DoubleVoteAttempt: the gate is already ACCEPTED or LOCKED
        """
        self._ensure_open()
        await self.prepare()

        live_embedding = await self._embed(live_frame)
        if live_embedding is None:
            self.context.last_error = ErrorCode.FACE_NOT_DETECTED
            self._transition(GateState.RETAKE)
            raise FaceNotDetected()

        confidence = match_confidence(self.context.reference_embedding, live_embedding)
        self.context.last_confidence = confidence
        matched = confidence > self.threshold

        logger.info("Face match: %s (confidence %.4f)", matched, confidence)
        self._transition(GateState.VERIFIED if matched else GateState.RETAKE)
        return matched

    async def cast(self, target: str, selections: Dict[str, List[str]]) -> CastResult:
        """
        Mint a token and cast, re-minting on TOKEN_EXPIRED.

        The same ballot payload is resubmitted with a fresh token each time.
        Any other error ends the attempt according to ``RETRY_POLICY``.
        """
        self._ensure_open()
        if self.context.state is not GateState.VERIFIED:
            raise RuntimeError(f"Cannot cast from state {self.context.state.value}")

        attempts = 0
        while True:
            attempts += 1
            self.context.cast_attempts = attempts

            self._transition(GateState.MINTING)
            try:
                token = await self.api.mint_vote_token()
                self._transition(GateState.CASTING)
                result = await self.api.cast_vote(token, target, selections)
            except PollaraError as e:
                self.context.last_error = e.error_code
                action = next_action(e.error_code)

                if action is RetryAction.REMINT and attempts < self.max_cast_attempts:
                    logger.info("Vote token expired, minting a new one (attempt %d)", attempts)
                    continue

                if action is RetryAction.ABANDON:
                    self._transition(GateState.LOCKED)
                else:
                    if action is RetryAction.FAIL:
                        logger.error("Cast failed with %s", e.error_code)
                    self._transition(GateState.FAILED)
                raise

            self.context.vote_id = result["vote_id"]
            self._transition(GateState.ACCEPTED)
            return CastResult(vote_id=result["vote_id"], attempts=attempts)

    async def run(
        self,
        live_frame,
        target: str,
        selections: Dict[str, List[str]]
    ) -> Optional[CastResult]:
        """
        Verify and, on a match, cast.

        Returns None when the face did not match; call again with a new frame.
        """
        self._ensure_open()
        if not await self.verify(live_frame):
            return None
        return await self.cast(target, selections)
