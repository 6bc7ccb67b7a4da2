"""
Resilient Transport
Bounded, cancellable retries around outbound HTTP requests.

Only a narrow set of failures is retried: HTTP 500/502/503/504 and
transient network faults (reset, refused, DNS, timeout, hang-up, or a
generic connection failure). Everything else, including 4xx responses,
goes straight back to the caller.

Each attempt runs under an absolute timeout combined with the caller's
CancelToken. The blocking requests call sits on a worker thread and
streams the body in chunks. When either fires, the caller shuts down the
socket under the live response, which ends any blocked read at once.
Attempts never overlap: an abandoned attempt is joined before the next
one starts.

This layer knows nothing about stashes. It executes requests.
"""

import http.client
import logging
import random
import socket
import threading
import time

import requests

from stasher.cancel import TIMEOUT, CancelToken
from stasher.errors import RemoteError, TransientFault, TransientNetworkError

logger = logging.getLogger(__name__)

RETRY_STATUSES = frozenset({500, 502, 503, 504})
DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY = 1.0     # seconds
DEFAULT_ATTEMPT_TIMEOUT = 15.0
DEFAULT_MAX_DELAY = 10.0
MAX_JITTER = 1.0
CHUNK_SIZE = 1024
MIN_SOCKET_TIMEOUT = 0.01

# Never retried even though requests files them under ConnectionError
_PERMANENT_ERRORS = (
    requests.exceptions.SSLError,
    requests.exceptions.ProxyError,
    requests.exceptions.InvalidURL,
    requests.exceptions.MissingSchema,
    requests.exceptions.InvalidSchema,
)

# Checked in order against every exception in the cause chain.
# RemoteDisconnected subclasses ConnectionResetError, so it comes first.
_FAULT_TYPES = (
    (socket.gaierror, TransientFault.DNS_FAILURE),
    (http.client.RemoteDisconnected, TransientFault.SOCKET_HANGUP),
    (requests.exceptions.ChunkedEncodingError, TransientFault.SOCKET_HANGUP),
    (BrokenPipeError, TransientFault.SOCKET_HANGUP),
    (ConnectionAbortedError, TransientFault.SOCKET_HANGUP),
    (ConnectionRefusedError, TransientFault.CONNECTION_REFUSED),
    (ConnectionResetError, TransientFault.CONNECTION_RESET),
    (requests.exceptions.Timeout, TransientFault.TIMEOUT),
    (TimeoutError, TransientFault.TIMEOUT),
)


def _cause_chain(exc: BaseException):
    """Yield exc and everything it wraps: causes, contexts, urllib3 reasons, args."""
    seen = set()
    stack = [exc]
    while stack:
        current = stack.pop(0)
        if not isinstance(current, BaseException) or id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        stack.append(current.__cause__)
        stack.append(current.__context__)
        stack.append(getattr(current, "reason", None))
        stack.extend(arg for arg in current.args if isinstance(arg, BaseException))


def classify_fault(exc: BaseException) -> TransientFault | None:
    """
    Decide whether a request exception is a transient network fault.

    Args:
        exc: The exception raised by requests.

    Returns:
        The TransientFault category, or None if the error must not be retried.
    """
    if isinstance(exc, _PERMANENT_ERRORS):
        return None

    chain = list(_cause_chain(exc))
    for exc_type, fault in _FAULT_TYPES:
        if any(isinstance(e, exc_type) for e in chain):
            return fault

    if isinstance(exc, (requests.exceptions.ConnectionError, ConnectionError)):
        return TransientFault.FETCH_FAILED
    return None


def compute_backoff(
    attempt: int,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    jitter: float = None,
) -> float:
    """
    Exponential backoff with additive jitter and a hard cap.

    delay = min(base * 2**attempt + jitter, max_delay), with jitter drawn
    uniformly from [0, 1) second when not given. attempt is zero-indexed.
    """
    if jitter is None:
        jitter = random.uniform(0, MAX_JITTER)
    return min(base_delay * 2 ** attempt + jitter, max_delay)


def _cancellable_sleep(seconds: float, signal: CancelToken) -> None:
    signal.sleep(seconds)


def _read_body(response: requests.Response, token: CancelToken) -> bool:
    """Read a streamed body in chunks. False if the attempt was cut short."""
    body = bytearray()
    for chunk in response.iter_content(CHUNK_SIZE):
        if token.cancelled:
            return False
        body.extend(chunk)
    # Same slot Response.content fills when it reads the body itself
    response._content = bytes(body)
    return True


def _sever(response: requests.Response) -> None:
    """Shut down the socket under a streaming response so a blocked read returns."""
    connection = getattr(getattr(response, "raw", None), "connection", None)
    sock = getattr(connection, "sock", None)
    if sock is not None:
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError as e:
            logger.debug("Socket already closed: %s", e)
    response.close()


class RetryingTransport:
    """
    Executes HTTP requests with bounded retries.

    Args:
        session: A requests.Session (or compatible object) to use for every
            attempt. When omitted, each attempt gets a fresh session that is
            closed afterwards.
        max_retries: Retries after the first attempt.
        base_delay: Backoff base in seconds.
        attempt_timeout: Absolute time limit for a single attempt, in seconds.
        max_delay: Upper bound on any single backoff, in seconds.
        sleep: Backoff sleeper, called as sleep(seconds, signal).
        jitter: Callable returning the jitter for one backoff, in seconds.
    """

    def __init__(
        self,
        session: requests.Session = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay: float = DEFAULT_BASE_DELAY,
        attempt_timeout: float = DEFAULT_ATTEMPT_TIMEOUT,
        max_delay: float = DEFAULT_MAX_DELAY,
        sleep=None,
        jitter=None,
    ):
        self.session = session
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.attempt_timeout = attempt_timeout
        self.max_delay = max_delay
        self._sleep = sleep or _cancellable_sleep
        self._jitter = jitter or (lambda: random.uniform(0, MAX_JITTER))

    def send(self, method: str, url: str, signal: CancelToken = None, **kwargs) -> requests.Response:
        """
        Send a request, retrying transient failures.

        Args:
            method: HTTP method.
            url: Absolute URL.
            signal: Caller's CancelToken. If already cancelled, no request is made.
            **kwargs: Passed through to requests (data, json, headers...).

        Returns:
            The first response that is not a retryable 5xx. 4xx responses
            are returned, not raised.

        Raises:
            Cancelled: If the caller's token fires.
            TransientNetworkError: If every attempt hit a transient fault.
            RemoteError: If every attempt got a retryable 5xx.
            requests.RequestException: Non-transient request failures.
        """
        signal = signal or CancelToken()
        total = self.max_retries + 1
        abandoned = []

        for attempt in range(total):
            self._drain(abandoned, signal)
            last = attempt == self.max_retries

            try:
                response = self._attempt(method, url, signal, abandoned, kwargs)
            except TransientNetworkError as e:
                failure = e
            except requests.RequestException as e:
                fault = classify_fault(e)
                if fault is None:
                    raise
                failure = TransientNetworkError(fault, f"Network error ({fault.value}): {e}")
                failure.__cause__ = e
            else:
                if response.status_code not in RETRY_STATUSES:
                    return response
                if last:
                    raise RemoteError(
                        f"HTTP {response.status_code} after {total} attempts",
                        status=response.status_code,
                    )
                logger.warning(
                    "%s %s returned HTTP %d (attempt %d/%d)",
                    method, url, response.status_code, attempt + 1, total,
                )
                self._backoff(attempt, signal)
                continue

            if last:
                raise failure
            logger.warning(
                "%s %s failed with %s (attempt %d/%d)",
                method, url, failure.fault.value, attempt + 1, total,
            )
            self._backoff(attempt, signal)

        # Unreachable: the last attempt always returns or raises
        raise RemoteError("Max retries exceeded")

    request = send

    def _backoff(self, attempt: int, signal: CancelToken) -> None:
        delay = compute_backoff(attempt, self.base_delay, self.max_delay, self._jitter())
        logger.debug("Backing off %.2fs before retry", delay)
        self._sleep(delay, signal)

    def _drain(self, abandoned: list, signal: CancelToken) -> None:
        """Wait for any abandoned attempt to finish before starting another."""
        while abandoned:
            worker = abandoned[0]
            worker.join(0.05)
            if not worker.is_alive():
                abandoned.pop(0)
            else:
                signal.raise_if_cancelled()

    def _attempt(self, method: str, url: str, signal: CancelToken, abandoned: list, kwargs: dict):
        signal.raise_if_cancelled()

        owned = self.session is None
        session = requests.Session() if owned else self.session
        deadline = time.monotonic() + self.attempt_timeout
        token = CancelToken(parent=signal)
        token.cancel_after(self.attempt_timeout, TIMEOUT)

        outcome = {}
        live = {}
        lock = threading.Lock()
        wake = threading.Event()
        remove = token.add_callback(wake.set)

        def run():
            try:
                # Socket waits never outlast the attempt
                timeout = max(deadline - time.monotonic(), MIN_SOCKET_TIMEOUT)
                response = session.request(method, url, timeout=timeout, stream=True, **kwargs)
                with lock:
                    cut_short = "abandoned" in live
                    live["response"] = response
                if cut_short:
                    _sever(response)
                elif _read_body(response, token):
                    outcome["response"] = response
            except Exception as e:
                outcome["error"] = e
            finally:
                if owned:
                    session.close()
                wake.set()

        logger.debug("%s %s", method, url)
        worker = threading.Thread(target=run, name="stasher-request", daemon=True)
        worker.start()
        try:
            wake.wait()
        finally:
            remove()
            token.detach()

        if "response" in outcome:
            return outcome["response"]
        if "error" in outcome and not token.cancelled:
            raise outcome["error"]

        # Cut short: kill the live connection and remember the worker
        with lock:
            live["abandoned"] = True
            response = live.get("response")
        if response is not None:
            _sever(response)
        abandoned.append(worker)
        signal.raise_if_cancelled()
        raise TransientNetworkError(
            TransientFault.TIMEOUT,
            f"Request timed out after {self.attempt_timeout:g} seconds",
        )
