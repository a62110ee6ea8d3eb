# gesture_simulator/virtual_engine_server.py
"""
TCP front end of the gesture simulator.
Decodes JSON-line requests from ``SimulatorEngineBinding`` clients, runs them
against a ``SimulatedEngine`` and writes the replies back.
"""
from typing import Any, Callable, Dict, List, Optional

import asyncio
import json
import logging

from smart_gesture.labels import ClassifierProfile
from smart_gesture.sample import Sample
from smart_gesture.simulator_binding import label_from_wire
from smart_gesture.simulator_binding import label_to_wire

from .engine_model import SimulatedEngine

logger = logging.getLogger(__name__)


def _sample(data: Any) -> Sample:
    if not isinstance(data, list):
        raise ValueError("sample must be a list of entries")
    return Sample(data)


def _labels(data: Any) -> list:
    labels = [label_from_wire(item) for item in data or []]
    if any(label is None for label in labels):
        raise ValueError("malformed label in request")
    return labels


def _profile(data: Optional[Dict[str, Any]]) -> Optional[ClassifierProfile]:
    if not data:
        return None
    return ClassifierProfile(
        str(data.get("classifier", "")), str(data.get("sub_classifier", ""))
    )


class VirtualEngineServer:
    def __init__(self, engine: SimulatedEngine, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop
        self.engine = engine
        self.clients: List[asyncio.StreamWriter] = []
        self.global_latency_ms: float = 0
        self._server: Optional[asyncio.AbstractServer] = None
        self._handlers: Dict[str, Callable[[Dict[str, Any]], Any]] = {
            "status": self._op_status,
            "classify_common": self._op_classify_common,
            "classify_custom": self._op_classify_custom,
            "train_signature": self._op_train_signature,
            "identify_signature": self._op_identify_signature,
            "delete_label": self._op_delete_label,
            "set_custom_gesture": self._op_set_custom_gesture,
            "is_two_gesture_similar": self._op_is_two_gesture_similar,
        }

    def set_latency(self, latency_ms: float):
        self.global_latency_ms = max(0, latency_ms)
        logger.info(f"Virtual engine latency set to {self.global_latency_ms:.2f} ms.")

    # Operations

    def _op_status(self, args):
        status = self.engine.status()
        status["clients"] = len(self.clients)
        status["latency_ms"] = self.global_latency_ms
        return status

    def _op_classify_common(self, args):
        result = self.engine.classify_common(
            _sample(args.get("sample")), _labels(args.get("labels")), _profile(args.get("profile"))
        )
        if result is None:
            return None
        return dict(result, label=label_to_wire(result["label"]))

    def _op_classify_custom(self, args):
        result = self.engine.classify_custom(_sample(args.get("sample")), _labels(args.get("labels")))
        if result is None:
            return None
        return dict(result, label=label_to_wire(result["label"]))

    def _op_train_signature(self, args):
        return self.engine.train_signature(int(args["index"]), _sample(args.get("sample")))

    def _op_identify_signature(self, args):
        indexes = [int(i) for i in args.get("indexes", [])]
        return self.engine.identify_signature(_sample(args.get("sample")), indexes)

    def _op_delete_label(self, args):
        return self.engine.delete_label(int(args["index"]))

    def _op_set_custom_gesture(self, args):
        label = label_from_wire(args.get("label"))
        if label is None:
            raise ValueError("set_custom_gesture needs a label")
        samples = [_sample(s) for s in args.get("samples", [])]
        return self.engine.set_custom_gesture(label, samples)

    def _op_is_two_gesture_similar(self, args):
        return self.engine.is_two_gesture_similar(
            _sample(args.get("first")), _sample(args.get("second"))
        )

    # Transport

    async def _send_reply(self, writer: asyncio.StreamWriter, reply: Dict[str, Any]):
        logger.debug(f"Engine sending: {reply}")
        try:
            writer.write((json.dumps(reply) + "\n").encode())
            await writer.drain()
        except ConnectionResetError:
            logger.warning("Client connection reset while sending reply. Removing client.")
            if writer in self.clients:
                self.clients.remove(writer)
        except Exception as e:
            logger.error(f"Error sending reply to client: {e}")

    async def handle_client_message(self, message: str, writer: asyncio.StreamWriter):
        """
        Handles one request line.
        Expected format: {"id": n, "op": "<operation>", "args": {...}}
        """
        logger.debug(f"Engine received: {message}")
        try:
            request = json.loads(message)
            request_id = int(request["id"])
            op = str(request["op"])
            args = request.get("args") or {}
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Malformed request from client '{message}': {e}")
            return

        if self.global_latency_ms > 0:
            await asyncio.sleep(self.global_latency_ms / 1000.0)

        handler = self._handlers.get(op)
        if handler is None:
            logger.warning(f"Unknown operation '{op}' in request {request_id}.")
            await self._send_reply(writer, {"id": request_id, "ok": False, "error": f"unknown operation '{op}'"})
            return
        try:
            result = handler(args)
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Request {request_id} '{op}' rejected: {e}")
            await self._send_reply(writer, {"id": request_id, "ok": False, "error": str(e)})
            return
        await self._send_reply(writer, {"id": request_id, "ok": True, "result": result})

    async def client_handler_loop(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        """Handles a single connected client, reading requests in a loop."""
        addr = writer.get_extra_info('peername')
        logger.info(f"Client {addr} connected to virtual engine.")
        self.clients.append(writer)
        try:
            while True:
                line_bytes = await reader.readline()
                if not line_bytes:
                    logger.info(f"Client {addr} disconnected.")
                    break
                message = line_bytes.decode().strip()
                if message:
                    await self.handle_client_message(message, writer)
        except ConnectionResetError:
            logger.info(f"Client {addr} connection reset.")
        except asyncio.IncompleteReadError:
            logger.info(f"Client {addr} disconnected (incomplete read).")
        except Exception as e:
            logger.error(f"Error in client handler for {addr}: {e}", exc_info=True)
        finally:
            logger.info(f"Closing connection for client {addr}.")
            if writer in self.clients:
                self.clients.remove(writer)
            if not writer.is_closing():
                writer.close()
                try:
                    await writer.wait_closed()
                except (ConnectionError, OSError):
                    pass

    async def start(self, host: str = 'localhost', port: int = 6790) -> asyncio.AbstractServer:
        """Starts listening and returns the server without blocking."""
        self._server = await asyncio.start_server(self.client_handler_loop, host, port)
        addr = self._server.sockets[0].getsockname()
        logger.info(f'Virtual engine server listening on {addr}')
        return self._server

    @property
    def port(self) -> Optional[int]:
        if self._server is None or not self._server.sockets:
            return None
        return self._server.sockets[0].getsockname()[1]

    async def start_server(self, host: str = 'localhost', port: int = 6790):
        """Starts the TCP server and serves until cancelled."""
        server = await self.start(host, port)
        async with server:
            await server.serve_forever()

    async def stop(self):
        if self._server is not None:
            self._server.close()
        # Open connections must be closed before the server can finish closing.
        for writer in list(self.clients):
            if not writer.is_closing():
                writer.close()
        self.clients.clear()
        if self._server is not None:
            await self._server.wait_closed()
            self._server = None
        logger.info("Virtual engine server stopped.")
