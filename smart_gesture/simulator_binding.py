# smart_gesture/simulator_binding.py
"""
Engine binding that talks to the gesture simulator over TCP.

Protocol: one JSON object per line. Requests are
``{"id": n, "op": "<operation>", "args": {...}}``; the simulator answers
``{"id": n, "ok": true, "result": ...}`` or ``{"id": n, "ok": false, "error": "..."}``.
"""
from typing import Any, Dict, List, Optional, Sequence

import asyncio
import itertools
import json
import logging

from .constants import ENGINE_CALL_TIMEOUT_SECONDS
from .constants import SecurityLevel
from .engine_binding import CommonResult
from .engine_binding import CustomResult
from .engine_binding import EngineBinding
from .engine_binding import SignatureMatch
from .engine_binding import TrainingResult
from .exceptions import CommunicationError
from .exceptions import SimulatorError
from .labels import ClassifierProfile
from .labels import CommonScore
from .labels import IndexedLabel
from .labels import Label
from .labels import NamedLabel
from .labels import PredefinedScore
from .sample import Sample

logger = logging.getLogger(__name__)

DEFAULT_SIMULATOR_HOST = "localhost"
DEFAULT_SIMULATOR_PORT = 6790


def label_to_wire(label: Label) -> Dict[str, Any]:
    if isinstance(label, IndexedLabel):
        return {"index": label.index}
    return {"name": label.name}


def label_from_wire(data: Optional[Dict[str, Any]]) -> Optional[Label]:
    if not data:
        return None
    if "index" in data:
        return IndexedLabel(int(data["index"]))
    if data.get("name"):
        return NamedLabel(str(data["name"]))
    return None


def sample_to_wire(sample: Sample) -> List[List[float]]:
    return [list(entry) for entry in sample.entries]


class SimulatorEngineBinding(EngineBinding):
    """Binding to a running ``gesture-simulator`` process."""

    def __init__(
        self,
        host: str = DEFAULT_SIMULATOR_HOST,
        port: int = DEFAULT_SIMULATOR_PORT,
        call_timeout: float = ENGINE_CALL_TIMEOUT_SECONDS,
    ):
        super().__init__(call_timeout=call_timeout)
        self.host = host
        self.port = port
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._pending: Dict[int, asyncio.Future] = {}
        self._request_ids = itertools.count(1)
        self._listener_task: Optional[asyncio.Task] = None

    async def connect(self) -> None:
        if self.is_connected:
            logger.info("Already connected to gesture simulator.")
            return
        try:
            logger.info(f"Connecting to gesture simulator at {self.host}:{self.port}...")
            self._reader, self._writer = await asyncio.open_connection(self.host, self.port)
        except ConnectionRefusedError as e:
            raise SimulatorError(
                f"Connection to gesture simulator refused at {self.host}:{self.port}. Is it running?"
            ) from e
        except OSError as e:
            raise SimulatorError(f"Failed to connect to gesture simulator: {e}") from e
        self._listener_task = asyncio.get_running_loop().create_task(self._listen())
        logger.info("Connected to gesture simulator.")

    async def disconnect(self) -> None:
        if self._listener_task and not self._listener_task.done():
            self._listener_task.cancel()
            try:
                await self._listener_task
            except asyncio.CancelledError:
                pass
        self._listener_task = None
        if self._writer:
            try:
                if not self._writer.is_closing():
                    self._writer.close()
                    await self._writer.wait_closed()
                logger.info("Disconnected from gesture simulator.")
            except (ConnectionError, OSError) as e:
                logger.warning(f"Error while disconnecting from gesture simulator: {e}")
            finally:
                self._reader = None
                self._writer = None
        self._fail_pending("Simulator binding disconnecting")

    @property
    def is_connected(self) -> bool:
        return self._writer is not None and not self._writer.is_closing()

    def _fail_pending(self, reason: str) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(CommunicationError(reason))
        self._pending.clear()

    async def _listen(self) -> None:
        logger.debug("Simulator listener started.")
        try:
            while True:
                line = await self._reader.readline()
                if not line:
                    logger.info("Gesture simulator closed the connection.")
                    break
                self._dispatch(line.decode().strip())
        except (asyncio.IncompleteReadError, ConnectionResetError) as e:
            logger.warning(f"Gesture simulator connection lost: {e}")
        finally:
            self._fail_pending("Gesture simulator connection closed")
            logger.debug("Simulator listener stopped.")

    def _dispatch(self, line: str) -> None:
        if not line:
            return
        try:
            message = json.loads(line)
            request_id = int(message["id"])
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Malformed reply from gesture simulator '{line}': {e}")
            return
        future = self._pending.pop(request_id, None)
        if future is None:
            logger.warning(f"Reply for unknown or expired request {request_id} ignored.")
            return
        if future.done():
            return
        if message.get("ok"):
            future.set_result(message.get("result"))
        else:
            future.set_exception(SimulatorError(
                f"Simulator rejected request {request_id}: {message.get('error', 'unknown error')}"
            ))

    async def _request(self, op: str, args: Dict[str, Any], fallback: Any) -> Any:
        """Sends one request and waits for its reply, returning ``fallback`` on timeout."""
        if not self.is_connected:
            raise SimulatorError("Not connected to gesture simulator.")
        request_id = next(self._request_ids)
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        payload = json.dumps({"id": request_id, "op": op, "args": args}) + "\n"
        try:
            self._writer.write(payload.encode())
            await self._writer.drain()
        except (ConnectionError, OSError) as e:
            self._pending.pop(request_id, None)
            raise CommunicationError(f"Failed to send '{op}' to gesture simulator: {e}") from e
        logger.debug(f"Sent request {request_id} '{op}' to gesture simulator.")
        result = await self._wait_result(future, op, fallback)
        self._pending.pop(request_id, None)
        return result

    async def status(self) -> Dict[str, Any]:
        return await self._request("status", {}, {})

    async def classify_common(
        self,
        sample: Sample,
        labels: Sequence[Label],
        profile: Optional[ClassifierProfile] = None,
    ) -> Optional[CommonResult]:
        if not labels:
            return None
        args = {
            "sample": sample_to_wire(sample),
            "labels": [label_to_wire(label) for label in labels],
            "profile": (
                {"classifier": profile.classifier, "sub_classifier": profile.sub_classifier}
                if profile is not None else None
            ),
        }
        result = await self._request("classify_common", args, None)
        if result is None:
            return None
        label = label_from_wire(result.get("label"))
        score_value = float(result.get("score", 0.0))
        named = isinstance(labels[0], NamedLabel)
        score = PredefinedScore(score_value) if named else CommonScore(score_value)
        return CommonResult(
            label=label, score=score, confidence=float(result.get("confidence", 0.0))
        )

    async def classify_custom(
        self, sample: Sample, labels: Sequence[Label]
    ) -> Optional[CustomResult]:
        if not labels:
            return None
        result = await self._request(
            "classify_custom",
            {"sample": sample_to_wire(sample), "labels": [label_to_wire(l) for l in labels]},
            None,
        )
        if not result:
            return None
        label = label_from_wire(result.get("label"))
        if label is None:
            return None
        return CustomResult(label=label, confidence=float(result.get("confidence", 0.0)))

    async def train_signature(self, index: int, sample: Sample) -> TrainingResult:
        fallback = {"index": index, "progress": 0.0, "timed_out": True}
        result = await self._request(
            "train_signature", {"index": index, "sample": sample_to_wire(sample)}, fallback
        )
        return TrainingResult(
            index=int(result.get("index", index)),
            progress=float(result.get("progress", 0.0)),
            error_code=result.get("error_code") or None,
            security_level=SecurityLevel(int(result.get("security_level", 0))),
            security_too_low=bool(result.get("security_too_low", False)),
            timed_out=bool(result.get("timed_out", False)),
        )

    async def identify_signature(
        self, sample: Sample, indexes: Sequence[int]
    ) -> SignatureMatch:
        result = await self._request(
            "identify_signature",
            {"sample": sample_to_wire(sample), "indexes": list(indexes)},
            {"matched": False},
        )
        return SignatureMatch(
            matched=bool(result.get("matched", False)),
            index=result.get("index"),
            error_code=result.get("error_code") or None,
            tries_left=int(result.get("tries_left", 0)),
            seconds_to_reset=int(result.get("seconds_to_reset", 0)),
        )

    async def delete_label(self, index: int) -> bool:
        return bool(await self._request("delete_label", {"index": index}, False))

    async def set_custom_gesture(self, label: Label, samples: Sequence[Sample]) -> None:
        await self._request(
            "set_custom_gesture",
            {"label": label_to_wire(label), "samples": [sample_to_wire(s) for s in samples]},
            None,
        )
        logger.info(f"Set {len(samples)} custom exemplars for {label} on simulator.")

    async def is_two_gesture_similar(self, first: Sample, second: Sample) -> bool:
        return bool(await self._request(
            "is_two_gesture_similar",
            {"first": sample_to_wire(first), "second": sample_to_wire(second)},
            False,
        ))
