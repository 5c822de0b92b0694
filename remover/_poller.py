import sys
import threading
import time
import typing

from remover import _types


def show_progress(stage: "_types.Stage", attempt: int, satisfied: bool):
    """Write a terse marker for each attempt that is still waiting."""
    if not satisfied:
        sys.stdout.write(".")
        sys.stdout.flush()


def _check_cancelled(
    stage: "_types.Stage",
    cancel: typing.Optional[threading.Event],
    attempt: int,
):
    if cancel is not None and cancel.is_set():
        raise _types.CancelledError(
            f"Cancelled while waiting after {attempt} attempt(s).",
            stage=stage,
        )


def poll(
    stage: "_types.Stage",
    predicate: typing.Callable[[], bool],
    interval: float,
    max_attempts: int,
    sleep: typing.Callable[[float], typing.Any] = time.sleep,
    progress: typing.Callable[["_types.Stage", int, bool], None] = show_progress,
    cancel: threading.Event = None,
    timeout_error: typing.Type["_types.PollTimeoutError"] = _types.PollTimeoutError,
) -> int:
    """
    Evaluate the predicate until it holds or the attempt budget runs out.

    The predicate is evaluated immediately and then again after each sleep of
    ``interval`` seconds. No sleep happens after the predicate holds or after
    the final attempt, so a stage that never succeeds sleeps exactly
    ``max_attempts - 1`` times. Errors raised by the predicate propagate
    immediately and unmodified.

    :param stage:
        The stage doing the waiting, which is carried by timeout and
        cancellation errors.
    :param predicate:
        Callable returning True once the awaited condition holds.
    :param interval:
        Seconds to sleep between attempts. Must be positive.
    :param max_attempts:
        Maximum number of times to evaluate the predicate. Zero times out
        without evaluating it at all.
    :param sleep:
        Sleep function, replaceable so that callers can wake early on
        cancellation and tests never block.
    :param progress:
        Called after every evaluation with the stage, the 1-based attempt
        number and whether the predicate held.
    :param cancel:
        Optional event that aborts the wait with a CancelledError once set.
    :param timeout_error:
        PollTimeoutError type to raise when the attempts are exhausted.
    :return:
        The 1-based attempt number on which the predicate held.
    """
    if interval <= 0:
        raise ValueError(f"Poll interval must be positive, got {interval}.")
    if max_attempts < 0:
        raise ValueError(f"Max attempts must not be negative, got {max_attempts}.")

    for attempt in range(1, max_attempts + 1):
        _check_cancelled(stage, cancel, attempt - 1)

        satisfied = bool(predicate())
        progress(stage, attempt, satisfied)
        if satisfied:
            return attempt

        if attempt < max_attempts:
            sleep(interval)

    raise timeout_error(
        f"Timed out after {max_attempts} attempt(s) at {interval}s intervals.",
        stage=stage,
        attempts=max_attempts,
    )
