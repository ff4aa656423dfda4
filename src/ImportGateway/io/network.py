# === NAVMAP v1 ===
# {
#   "module": "ImportGateway.io.network",
#   "purpose": "Address admission, URL validation, and bounded redirect-audited fetching",
#   "sections": [
#     {"id": "address-classifier", "name": "Address Classifier", "anchor": "ADDR", "kind": "api"},
#     {"id": "dns-stubs", "name": "DNS Stubs", "anchor": "DNS", "kind": "helpers"},
#     {"id": "validate-url-security", "name": "validate_url_security", "anchor": "function-validate-url-security", "kind": "function"},
#     {"id": "request-with-redirect-audit", "name": "request_with_redirect_audit", "anchor": "function-request-with-redirect-audit", "kind": "function"},
#     {"id": "fetch-document", "name": "fetch_document", "anchor": "function-fetch-document", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Network admission and retrieval for the import gateway.

Every outbound request goes through :func:`validate_url_security`, which checks
the URL shape, normalises internationalised hostnames, applies the optional
host allowlist, and classifies *every* address the hostname resolves to.  The
HTTP client never follows redirects on its own: :func:`request_with_redirect_audit`
re-validates each hop before connecting to it, so a ``3xx`` cannot smuggle the
fetch onto an internal address.  When the transport reports the peer it
actually connected to, that address is classified again.

Resolution results are never cached; a fresh lookup happens for each check.
"""

from __future__ import annotations

import ipaddress
import logging
import socket
import threading
import time
import unicodedata
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, Iterator, List, Mapping, Optional, Tuple
from urllib.parse import ParseResult, urljoin, urlparse, urlunparse

import httpx

from ..errors import (
    FetchTimeoutError,
    ForbiddenTargetError,
    InvalidInputError,
    PayloadTooLargeError,
    UnresolvableHostError,
    UpstreamError,
)
from ..settings import DownloadConfiguration

__all__ = [
    "IPAddress",
    "ResolvedAddress",
    "FetchedDocument",
    "is_internal_address",
    "resolve_host",
    "classify_host",
    "register_dns_stub",
    "clear_dns_stubs",
    "validate_url_security",
    "request_with_redirect_audit",
    "fetch_document",
]

LOGGER = logging.getLogger("ImportGateway.network")

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address

_INTERNAL_NETWORKS: Tuple[ipaddress.IPv4Network | ipaddress.IPv6Network, ...] = tuple(
    ipaddress.ip_network(cidr)
    for cidr in (
        "0.0.0.0/8",
        "10.0.0.0/8",
        "100.64.0.0/10",
        "127.0.0.0/8",
        "169.254.0.0/16",
        "172.16.0.0/12",
        "192.168.0.0/16",
        "224.0.0.0/4",
        "240.0.0.0/4",
        "::/128",
        "::1/128",
        "fc00::/7",
        "fe80::/10",
        "ff00::/8",
    )
)

_SVG_LIKE_MEDIA_TYPES = ("svg", "xml", "text/plain")

_DNS_STUB_LOCK = threading.Lock()
_DNS_STUBS: Dict[str, Callable[[str], List[Tuple]]] = {}


# --- Address Classifier ---------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ResolvedAddress:
    """Addresses a hostname resolved to for one admission check.

    Attributes:
        hostname: ASCII hostname (or IP literal) that was resolved.
        addresses: Every syntactically valid address returned by the resolver.
    """

    hostname: str
    addresses: FrozenSet[IPAddress] = field(default_factory=frozenset)

    @property
    def internal_addresses(self) -> FrozenSet[IPAddress]:
        return frozenset(address for address in self.addresses if is_internal_address(address))

    @property
    def is_resolved(self) -> bool:
        return bool(self.addresses)

    @property
    def is_safe(self) -> bool:
        """``True`` only when at least one address resolved and none is internal."""

        return self.is_resolved and not self.internal_addresses


def _parse_address(value: object) -> Optional[IPAddress]:
    text = str(value).strip()
    if text.startswith("[") and text.endswith("]"):
        text = text[1:-1]
    # Zone identifiers (fe80::1%eth0) are not part of the address.
    text = text.split("%", 1)[0]
    try:
        return ipaddress.ip_address(text)
    except ValueError:
        return None


def is_internal_address(address: IPAddress | str) -> bool:
    """Return ``True`` for loopback, private, link-local, unspecified, and similar addresses.

    Strings that are not valid IP literals return ``False``; callers are expected
    to discard them rather than trust them.
    """

    candidate = _parse_address(address) if isinstance(address, str) else address
    if candidate is None:
        return False
    if isinstance(candidate, ipaddress.IPv6Address) and candidate.ipv4_mapped is not None:
        candidate = candidate.ipv4_mapped
    return any(
        candidate.version == network.version and candidate in network
        for network in _INTERNAL_NETWORKS
    )


def _getaddrinfo(host: str) -> List[Tuple]:
    with _DNS_STUB_LOCK:
        stub = _DNS_STUBS.get(host.lower())
    if stub is not None:
        return stub(host)
    return socket.getaddrinfo(host, None)


def resolve_host(hostname: str) -> ResolvedAddress:
    """Resolve ``hostname`` across all address families without caching.

    Lookup failures yield an empty address set.  IP literals are returned as-is.
    """

    literal = _parse_address(hostname)
    if literal is not None:
        return ResolvedAddress(hostname=hostname, addresses=frozenset({literal}))

    try:
        infos = _getaddrinfo(hostname)
    except (socket.gaierror, UnicodeError, OSError) as exc:
        LOGGER.warning(
            "dns resolution failed",
            extra={"stage": "admission", "hostname": hostname, "error": str(exc)},
        )
        return ResolvedAddress(hostname=hostname)

    addresses = set()
    for info in infos:
        try:
            raw = info[4][0]
        except (IndexError, TypeError):
            continue
        parsed = _parse_address(raw)
        if parsed is None:
            LOGGER.debug(
                "discarding unparseable resolver entry",
                extra={"stage": "admission", "hostname": hostname, "entry": repr(raw)},
            )
            continue
        addresses.add(parsed)
    return ResolvedAddress(hostname=hostname, addresses=frozenset(addresses))


def classify_host(hostname: str) -> ResolvedAddress:
    """Resolve ``hostname`` and raise unless every address is routable.

    Raises:
        UnresolvableHostError: No address could be resolved.
        ForbiddenTargetError: At least one resolved address is internal.
    """

    resolved = resolve_host(hostname)
    if not resolved.is_resolved:
        raise UnresolvableHostError(f"Could not resolve hostname {hostname}")
    internal = resolved.internal_addresses
    if internal:
        LOGGER.warning(
            "blocked internal address",
            extra={
                "stage": "admission",
                "hostname": hostname,
                "reason": "internal-address",
                "extra_fields": {"addresses": sorted(str(ip) for ip in internal)},
            },
        )
        raise ForbiddenTargetError("Fetching private IP addresses is not allowed")
    return resolved


# --- DNS Stubs -----------------------------------------------------------------


def register_dns_stub(host: str, handler: Callable[[str], List[Tuple]]) -> None:
    """Register a ``getaddrinfo``-shaped callable for ``host`` used during testing."""

    with _DNS_STUB_LOCK:
        _DNS_STUBS[host.lower()] = handler


def clear_dns_stubs() -> None:
    """Remove all registered DNS stubs."""

    with _DNS_STUB_LOCK:
        _DNS_STUBS.clear()


# --- URL validation -------------------------------------------------------------


def _enforce_idn_safety(host: str) -> None:
    """Validate internationalized hostnames and reject suspicious patterns."""

    if all(ord(char) < 128 for char in host):
        return

    scripts = set()
    for char in host:
        if ord(char) < 128:
            if char.isalpha():
                scripts.add("LATIN")
            continue

        category = unicodedata.category(char)
        if category in {"Mn", "Me", "Cf"}:
            raise InvalidInputError("Internationalized host contains invisible characters")

        try:
            name = unicodedata.name(char)
        except ValueError as exc:
            raise InvalidInputError("Internationalized host contains unknown characters") from exc

        for script in ("LATIN", "CYRILLIC", "GREEK"):
            if script in name:
                scripts.add(script)
                break

    if len(scripts) > 1:
        raise InvalidInputError("Internationalized host mixes multiple scripts")


def _rebuild_netloc(parsed: ParseResult, ascii_host: str) -> str:
    """Reconstruct URL netloc with a normalized hostname."""

    host_component = ascii_host
    if ":" in host_component and not host_component.startswith("["):
        host_component = f"[{host_component}]"

    port = f":{parsed.port}" if parsed.port else ""
    return f"{host_component}{port}"


def _check_allowlist(ascii_host: str, http_config: DownloadConfiguration) -> None:
    normalized = http_config.normalized_allowed_hosts()
    if normalized is None:
        return
    exact, suffixes = normalized
    if ascii_host in exact:
        return
    if any(ascii_host == suffix or ascii_host.endswith(f".{suffix}") for suffix in suffixes):
        return
    raise ForbiddenTargetError(f"Host {ascii_host} is not in the allowlist")


def validate_url_security(url: str, http_config: Optional[DownloadConfiguration] = None) -> str:
    """Validate ``url`` for fetching and return its normalised form.

    Args:
        url: Candidate URL supplied by the caller or taken from a redirect.
        http_config: Settings carrying the optional host allowlist.

    Returns:
        The URL with its hostname lower-cased and IDNA-encoded.

    Raises:
        InvalidInputError: Not an absolute http(s) URL with a hostname, carries
            credentials, or has an unsafe internationalised hostname.
        ForbiddenTargetError: Host outside the allowlist or resolving to an
            internal address.
        UnresolvableHostError: Hostname does not resolve.
    """

    candidate = (url or "").strip()
    if not candidate:
        raise InvalidInputError("Missing url")
    try:
        parsed = urlparse(candidate)
        port = parsed.port
    except ValueError as exc:
        raise InvalidInputError("Invalid URL") from exc

    if parsed.scheme.lower() not in {"http", "https"}:
        raise InvalidInputError("URL must be http or https")
    host = parsed.hostname
    if not host:
        raise InvalidInputError("URL must include a hostname")
    if parsed.username or parsed.password:
        raise InvalidInputError("Credentials in URLs are not allowed")

    is_ip = _parse_address(host) is not None
    ascii_host = host.lower()
    if not is_ip:
        _enforce_idn_safety(host)
        try:
            ascii_host = host.encode("idna").decode("ascii").lower()
        except UnicodeError as exc:
            raise InvalidInputError(f"Invalid internationalized hostname: {host}") from exc

    if port is not None and not 0 < port < 65536:
        raise InvalidInputError("URL port out of range")

    _check_allowlist(ascii_host, http_config or DownloadConfiguration())
    classify_host(ascii_host)

    parsed = parsed._replace(
        scheme=parsed.scheme.lower(), netloc=_rebuild_netloc(parsed, ascii_host)
    )
    return urlunparse(parsed)


# --- Fetching -------------------------------------------------------------------


@dataclass(slots=True)
class FetchedDocument:
    """Fully buffered upstream response that passed the size gate.

    Attributes:
        url: URL originally requested.
        final_url: URL of the response that carried the body.
        status_code: Final HTTP status.
        content_type: Reported ``Content-Type`` header, if any.
        text: Decoded body.
        size_bytes: UTF-8 length of ``text``.
        redirects: Number of redirect hops followed.
    """

    url: str
    final_url: str
    status_code: int
    content_type: Optional[str]
    text: str
    size_bytes: int
    redirects: int


def _verify_peer_address(response: httpx.Response) -> None:
    """Classify the address the transport actually connected to, when it is exposed."""

    stream = response.extensions.get("network_stream")
    get_extra_info = getattr(stream, "get_extra_info", None)
    if not callable(get_extra_info):
        return
    server_addr = get_extra_info("server_addr")
    if not server_addr:
        return
    address = _parse_address(server_addr[0])
    if address is not None and is_internal_address(address):
        LOGGER.warning(
            "connected peer is internal",
            extra={"stage": "fetch", "url": str(response.request.url), "reason": "peer-address"},
        )
        raise ForbiddenTargetError("Fetching private IP addresses is not allowed")


def _remaining_time(deadline: float) -> float:
    remaining = deadline - time.monotonic()
    if remaining <= 0:
        raise FetchTimeoutError("Fetch timed out")
    return remaining


@contextmanager
def request_with_redirect_audit(
    *,
    client: httpx.Client,
    url: str,
    http_config: DownloadConfiguration,
    headers: Optional[Mapping[str, str]] = None,
    assume_url_validated: bool = False,
    deadline: Optional[float] = None,
) -> Iterator[Tuple[httpx.Response, int]]:
    """Issue a streaming GET while validating every redirect target.

    Yields the final non-redirect response together with the number of hops
    followed.  The response is closed when the context exits.  With a
    ``deadline`` (a ``time.monotonic`` reading) every hop is sent with only the
    time that remains, and a hop is never started once it has passed.
    """

    redirects = 0
    current_url = url if assume_url_validated else validate_url_security(url, http_config)
    response: Optional[httpx.Response] = None
    try:
        while True:
            timeout = client.timeout
            if deadline is not None:
                timeout = httpx.Timeout(_remaining_time(deadline))
            request = client.build_request(
                "GET", current_url, headers=dict(headers or {}), timeout=timeout
            )
            response = client.send(request, stream=True, follow_redirects=False)
            _verify_peer_address(response)

            if not response.is_redirect:
                yield response, redirects
                return

            status = response.status_code
            redirects += 1
            if redirects > http_config.max_redirects:
                raise UpstreamError(
                    f"Too many redirects (limit {http_config.max_redirects})", status_code=status
                )
            next_url = urljoin(current_url, response.headers["Location"])
            response.close()
            response = None
            LOGGER.info(
                "following redirect",
                extra={"stage": "fetch", "url": next_url, "status": status},
            )
            current_url = validate_url_security(next_url, http_config)
    finally:
        if response is not None:
            response.close()


def _check_media_type(content_type: Optional[str], url: str) -> None:
    if not content_type:
        return
    lowered = content_type.lower()
    if not any(marker in lowered for marker in _SVG_LIKE_MEDIA_TYPES):
        # The body check downstream is authoritative; hosts often misreport types.
        LOGGER.warning(
            "unexpected content type",
            extra={"stage": "fetch", "url": url, "extra_fields": {"content_type": content_type}},
        )


def _declared_length(response: httpx.Response) -> Optional[int]:
    value = response.headers.get("Content-Length")
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _decode_body(body: bytes, encoding: Optional[str]) -> str:
    try:
        return body.decode(encoding or "utf-8", errors="replace")
    except LookupError:
        return body.decode("utf-8", errors="replace")


def fetch_document(
    url: str,
    *,
    client: httpx.Client,
    http_config: DownloadConfiguration,
    correlation_id: Optional[str] = None,
    assume_url_validated: bool = False,
) -> FetchedDocument:
    """Fetch ``url`` within the configured deadline and size ceiling.

    Raises:
        FetchTimeoutError: A network phase or the overall deadline elapsed.
        UpstreamError: Non-success status, redirect budget exhausted, or the
            connection could not be established.
        PayloadTooLargeError: The body exceeds ``http_config.max_bytes``.
        InvalidInputError, ForbiddenTargetError, UnresolvableHostError: Raised
            by admission checks on the URL or any redirect hop.
    """

    limit = http_config.max_bytes
    deadline = time.monotonic() + http_config.timeout_sec
    headers = http_config.polite_http_headers(correlation_id=correlation_id)

    try:
        with request_with_redirect_audit(
            client=client,
            url=url,
            http_config=http_config,
            headers=headers,
            assume_url_validated=assume_url_validated,
            deadline=deadline,
        ) as (response, redirects):
            final_url = str(response.url)
            if not response.is_success:
                raise UpstreamError(
                    f"Upstream fetch failed: {response.status_code}",
                    status_code=response.status_code,
                )

            content_type = response.headers.get("Content-Type")
            _check_media_type(content_type, final_url)

            declared = _declared_length(response)
            if declared is not None and declared > limit:
                raise PayloadTooLargeError("SVG too large", limit_bytes=limit)

            chunks: List[bytes] = []
            received = 0
            # Unchunked iteration yields each read as it arrives.
            for chunk in response.iter_bytes():
                received += len(chunk)
                if received > limit:
                    raise PayloadTooLargeError("SVG too large", limit_bytes=limit)
                _remaining_time(deadline)
                chunks.append(chunk)
            status_code = response.status_code
            encoding = response.encoding
    except httpx.TimeoutException as exc:
        raise FetchTimeoutError("Fetch timed out") from exc
    except httpx.TransportError as exc:
        LOGGER.warning(
            "upstream connection failed",
            extra={"stage": "fetch", "url": url, "error": str(exc)},
        )
        raise UpstreamError("Upstream connection failed") from exc
    except httpx.HTTPError as exc:
        raise UpstreamError("Upstream response could not be read") from exc

    text = _decode_body(b"".join(chunks), encoding)
    size_bytes = len(text.encode("utf-8"))
    if size_bytes > limit:
        raise PayloadTooLargeError("SVG too large", limit_bytes=limit)

    return FetchedDocument(
        url=url,
        final_url=final_url,
        status_code=status_code,
        content_type=content_type,
        text=text,
        size_bytes=size_bytes,
        redirects=redirects,
    )
