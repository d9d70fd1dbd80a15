import logging
from collections.abc import AsyncIterator, Iterable, Iterator, Sequence
from contextlib import asynccontextmanager
from types import TracebackType
from typing import Any

import anyio
from anyio.abc import ObjectReceiveStream, ObjectSendStream, TaskStatus
from eth_abi import decode
from eth_abi.exceptions import DecodingError
from ethereum_rpc import Address, LogEntry, LogTopic

from ._events import EventSpec
from ._type_mapper import (
    AddressValue,
    DynamicSequence,
    FixedSequence,
    MappedType,
    StructType,
)

logger = logging.getLogger(__name__)


class EventDecodingError(Exception):
    """Raised when a log entry cannot be decoded as the expected event."""


class DecodedEvent:
    """
    A decoded log entry: the event field values by their exported names
    (in declaration order), and the raw log entry.
    """

    def __init__(self, name: str, values: Sequence[tuple[str, Any]], log_entry: LogEntry):
        self.name = name
        self.log_entry = log_entry
        self._values_seq = tuple(values)
        self._values_dict = dict(values)

    @property
    def as_dict(self) -> dict[str, Any]:
        """Returns the field values as a dictionary."""
        return dict(self._values_dict)

    @property
    def as_tuple(self) -> tuple[Any, ...]:
        """Returns the field values in declaration order."""
        return tuple(value for _name, value in self._values_seq)

    def __getitem__(self, name: str) -> Any:
        """Returns the value of the field with the given name."""
        return self._values_dict[name]

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, DecodedEvent)
            and self.name == other.name
            and self._values_seq == other._values_seq
            and self.log_entry == other.log_entry
        )

    def __repr__(self) -> str:
        fields = ", ".join(f"{name}={value!r}" for name, value in self._values_seq)
        return f"{self.name}({fields})"


def _normalize(mapped_type: MappedType, value: Any) -> Any:
    """Converts a value returned by ``eth_abi`` to the type it is exposed as."""
    match mapped_type:
        case AddressValue():
            return Address.from_hex(value)
        case FixedSequence(element=element):
            return tuple(_normalize(element, item) for item in value)
        case DynamicSequence(element=element):
            return [_normalize(element, item) for item in value]
        case StructType(fields=fields):
            return tuple(
                _normalize(field.mapped_type, item)
                for field, item in zip(fields, value, strict=True)
            )
    return value


class EventDecoder:
    """Decodes log entries produced by a specific event."""

    def __init__(self, spec: EventSpec):
        self._spec = spec

    @property
    def spec(self) -> EventSpec:
        return self._spec

    def decode(self, log_entry: LogEntry) -> DecodedEvent:
        """
        Decodes a log entry.

        Indexed fields of reference types are returned as the :py:class:`LogTopic` hashes
        that are stored in their place.
        """
        spec = self._spec
        topics: Sequence[LogTopic] = log_entry.topics
        if not spec.anonymous:
            if not topics or topics[0] != spec.topic:
                raise EventDecodingError(
                    f"This log entry does not belong to the event `{spec.signature}`"
                )
            topics = topics[1:]

        indexed = spec.indexed_inputs
        if len(topics) != len(indexed):
            raise EventDecodingError(
                f"The number of topics in the log entry ({len(topics)}) does not match "
                f"the number of indexed fields in the event ({len(indexed)})"
            )

        data_inputs = spec.data_inputs
        try:
            decoded_topics = {
                arg.name: (
                    topic
                    if arg.hashed
                    else _normalize(
                        arg.mapped_type, decode([arg.abi_type.canonical_form], bytes(topic))[0]
                    )
                )
                for arg, topic in zip(indexed, topics, strict=True)
            }
            decoded_data = decode(
                [arg.abi_type.canonical_form for arg in data_inputs], log_entry.data
            )
        except DecodingError as exc:
            raise EventDecodingError(
                f"Could not decode a log entry of the event `{spec.signature}`: {exc}"
            ) from exc

        decoded_values = {
            arg.name: _normalize(arg.mapped_type, value)
            for arg, value in zip(data_inputs, decoded_data, strict=True)
        }
        decoded_values.update(decoded_topics)

        return DecodedEvent(
            spec.type_name,
            [(arg.name, decoded_values[arg.name]) for arg in spec.inputs],
            log_entry,
        )


class EventIterator:
    """
    Iterates over decoded events from a finite sequence of log entries
    (e.g. the result of a historical log query).

    Not safe to share between tasks or threads.
    """

    def __init__(self, log_entries: Iterable[LogEntry], decoder: EventDecoder):
        self._log_entries = log_entries
        self._iterator: None | Iterator[LogEntry] = iter(log_entries)
        self._decoder = decoder
        self._event: None | DecodedEvent = None
        self._error: None | Exception = None

    @property
    def event(self) -> None | DecodedEvent:
        """The event the last successful :py:meth:`next` call advanced to."""
        return self._event

    @property
    def error(self) -> None | Exception:
        """The error that terminated the iteration, if any."""
        return self._error

    def next(self) -> bool:
        """
        Advances to the next event, returning ``False`` when there are no more events,
        or the iteration was terminated by an error, or the iterator was closed.
        """
        if self._iterator is None or self._error is not None:
            return False

        try:
            log_entry = next(self._iterator)
        except StopIteration:
            self._event = None
            return False
        except Exception as exc:  # noqa: BLE001
            # Transport failures of the log source are reported through `error`.
            self._event = None
            self._error = exc
            return False

        try:
            self._event = self._decoder.decode(log_entry)
        except EventDecodingError as exc:
            self._event = None
            self._error = exc
            return False

        return True

    def close(self) -> None:
        """Releases the log source. Can be called more than once."""
        if self._iterator is None:
            return
        close = getattr(self._log_entries, "close", None)
        self._iterator = None
        if close is not None:
            close()

    def __iter__(self) -> Iterator[DecodedEvent]:
        while self.next():
            # `next()` returning `True` guarantees the event is set
            yield self._event  # type: ignore[misc]

    def __enter__(self) -> "EventIterator":
        return self

    def __exit__(
        self,
        exc_type: None | type[BaseException],
        exc_value: None | BaseException,
        traceback: None | TracebackType,
    ) -> None:
        self.close()


class EventSubscription:
    """
    A live stream of decoded events.

    The events are forwarded from the log source by a separate task,
    in the order the source produces them.
    Once :py:meth:`cancel` returns, no more events will be delivered.
    """

    def __init__(self, receive_stream: ObjectReceiveStream[DecodedEvent]):
        self._receive_stream = receive_stream
        self._cancel_scope = anyio.CancelScope()
        self._finished = anyio.Event()
        self._error: None | Exception = None

    @property
    def error(self) -> None | Exception:
        """The error that terminated the stream, if any."""
        return self._error

    @property
    def finished(self) -> bool:
        """Whether the forwarding task has stopped."""
        return self._finished.is_set()

    async def receive(self) -> DecodedEvent:
        """
        Returns the next event.
        Raises ``anyio.EndOfStream`` if the subscription was cancelled or terminated.
        """
        return await self._receive_stream.receive()

    def __aiter__(self) -> AsyncIterator[DecodedEvent]:
        return self._receive_stream.__aiter__()

    async def cancel(self) -> None:
        """
        Stops the forwarding task and releases the log source.
        Returns after the forwarding task has finished. Can be called more than once.
        """
        self._cancel_scope.cancel()
        await self._finished.wait()

    async def _forward(
        self,
        log_entries: AsyncIterator[LogEntry],
        decoder: EventDecoder,
        send_stream: ObjectSendStream[DecodedEvent],
        *,
        task_status: TaskStatus[None] = anyio.TASK_STATUS_IGNORED,
    ) -> None:
        task_status.started()
        try:
            with self._cancel_scope:
                async for log_entry in log_entries:
                    await send_stream.send(decoder.decode(log_entry))
        except Exception as exc:  # noqa: BLE001
            # Decoding and source failures end the stream and are reported through `error`.
            logger.debug("Event subscription terminated: %s", exc)
            self._error = exc
        finally:
            with anyio.CancelScope(shield=True):
                aclose = getattr(log_entries, "aclose", None)
                if aclose is not None:
                    await aclose()
                await send_stream.aclose()
            self._finished.set()
            logger.debug("Event subscription for `%s` finished", decoder.spec.signature)


@asynccontextmanager
async def watch_events(
    log_entries: AsyncIterator[LogEntry],
    decoder: EventDecoder,
    *,
    buffer_size: int = 0,
) -> AsyncIterator[EventSubscription]:
    """
    Starts forwarding decoded events from ``log_entries``
    (an async generator of log entries, e.g. polling a log filter)
    and yields the subscription.
    The subscription is cancelled on exit.
    """
    send_stream, receive_stream = anyio.create_memory_object_stream[DecodedEvent](buffer_size)
    subscription = EventSubscription(receive_stream)
    async with anyio.create_task_group() as task_group, receive_stream:
        await task_group.start(
            subscription._forward,  # noqa: SLF001
            log_entries,
            decoder,
            send_stream,
        )
        logger.debug("Event subscription for `%s` started", decoder.spec.signature)
        try:
            yield subscription
        finally:
            await subscription.cancel()
