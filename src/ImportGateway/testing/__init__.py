"""Testing utilities for exercising the import gateway without a network.

Provides DNS stubbing so hostnames resolve to chosen addresses, a routing
``httpx.MockTransport`` that serves canned responses per URL and records the
requests it saw, and small SVG fixtures.
"""

from __future__ import annotations

import contextlib
import socket
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

import httpx

from ..io.network import clear_dns_stubs, register_dns_stub

__all__ = [
    "BENIGN_SVG",
    "ResponseSpec",
    "RoutingTransport",
    "TricklingStream",
    "addrinfo_for",
    "stub_dns",
    "benign_svg_of_size",
]

BENIGN_SVG = (
    '<svg xmlns="http://www.w3.org/2000/svg" width="24" height="24" viewBox="0 0 24 24">\n'
    '  <circle cx="12" cy="12" r="10" fill="#3b82f6"/>\n'
    '  <path d="M7 12l3 3 7-7" stroke="#fff" stroke-width="2" fill="none"/>\n'
    "</svg>\n"
)


def benign_svg_of_size(size: int) -> str:
    """Return a benign SVG exactly ``size`` bytes long (padding with shapes then spaces)."""

    head = '<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 100 100">\n'
    tail = "</svg>\n"
    shape = '  <rect x="1" y="1" width="8" height="8" fill="#10b981"/>\n'
    budget = size - len(head) - len(tail)
    if budget < 0:
        raise ValueError(f"size must be at least {len(head) + len(tail)} bytes")
    body = shape * (budget // len(shape))
    body += " " * (budget - len(body))
    return head + body + tail


def addrinfo_for(*addresses: str) -> List[Tuple]:
    """Return ``getaddrinfo``-shaped tuples for ``addresses``."""

    infos: List[Tuple] = []
    for address in addresses:
        family = socket.AF_INET6 if ":" in address else socket.AF_INET
        infos.append((family, socket.SOCK_STREAM, socket.IPPROTO_TCP, "", (address, 0)))
    return infos


@contextlib.contextmanager
def stub_dns(mapping: Mapping[str, Union[Sequence[str], Callable[[str], List[Tuple]]]]) -> Iterator[None]:
    """Temporarily resolve hostnames in ``mapping`` to the given addresses.

    Values may be a sequence of address strings (an empty sequence simulates a
    lookup failure) or a ``getaddrinfo``-shaped callable.
    """

    for host, target in mapping.items():
        if callable(target):
            register_dns_stub(host, target)
        elif not target:
            register_dns_stub(host, _unresolvable)
        else:
            register_dns_stub(host, lambda _host, _addrs=tuple(target): addrinfo_for(*_addrs))
    try:
        yield
    finally:
        clear_dns_stubs()


def _unresolvable(host: str) -> List[Tuple]:
    raise socket.gaierror(socket.EAI_NONAME, f"Name or service not known: {host}")


@dataclass
class ResponseSpec:
    """Canned response served by :class:`RoutingTransport`."""

    status: int = 200
    body: Union[bytes, str] = b""
    headers: Mapping[str, str] = field(default_factory=dict)
    raise_exc: Optional[Callable[[httpx.Request], Exception]] = None
    extensions: Dict[str, object] = field(default_factory=dict)
    stream: Optional[httpx.SyncByteStream] = None

    def serialise_body(self) -> bytes:
        if isinstance(self.body, bytes):
            return self.body
        return self.body.encode("utf-8")


class TricklingStream(httpx.SyncByteStream):
    """Body that releases one chunk at a time, sleeping before each."""

    def __init__(self, chunks: Sequence[bytes], delay: float) -> None:
        self.chunks = list(chunks)
        self.delay = delay

    def __iter__(self) -> Iterator[bytes]:
        for chunk in self.chunks:
            time.sleep(self.delay)
            yield chunk


class RoutingTransport(httpx.MockTransport):
    """``httpx.MockTransport`` that routes by full URL and records requests."""

    def __init__(self, routes: Optional[Mapping[str, ResponseSpec]] = None) -> None:
        self.routes: Dict[str, ResponseSpec] = dict(routes or {})
        self.requests: List[httpx.Request] = []
        super().__init__(self._handle)

    def add(self, url: str, spec: ResponseSpec) -> None:
        self.routes[url] = spec

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        spec = self.routes.get(str(request.url))
        if spec is None:
            return httpx.Response(404, content=b"not found")
        if spec.raise_exc is not None:
            raise spec.raise_exc(request)
        headers = {"Content-Type": "image/svg+xml"}
        headers.update(spec.headers)
        if spec.stream is not None:
            return httpx.Response(
                spec.status, headers=headers, stream=spec.stream, extensions=dict(spec.extensions)
            )
        return httpx.Response(
            spec.status,
            headers=headers,
            content=spec.serialise_body(),
            extensions=dict(spec.extensions),
        )
