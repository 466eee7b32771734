"""Running commands, locally or elsewhere, and collecting their output."""

from __future__ import annotations

import io
import logging
import os
import subprocess
import sys
import threading
from abc import ABC, abstractmethod
from typing import IO, Any, Callable, Sequence

logger = logging.getLogger(__name__)

_CHUNK = 64 * 1024


class CommandError(Exception):
    """A command could not be started or exited unsuccessfully."""

    def __init__(
        self,
        message: str,
        *,
        command: Sequence[str] = (),
        returncode: int | None = None,
        output: Sequence[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.command = tuple(command)
        self.returncode = returncode
        self.output: list[str] = list(output) if output else []


class Cmd(ABC):
    """A command that can be configured and then run somewhere.

    A stream left unset is connected to the null device.
    """

    def __init__(self) -> None:
        self.env: list[str] | None = None
        self.stdin: Any = None
        self.stdout: Any = None
        self.stderr: Any = None

    @abstractmethod
    def run(self) -> None:
        """Run the command, raising CommandError on failure."""

    def set_env(self, *args: str) -> Cmd:
        """Replace the environment with ``key=value`` entries."""
        self.env = list(args) if args else None
        return self

    def set_stdin(self, reader: Any) -> Cmd:
        self.stdin = reader
        return self

    def set_stdout(self, writer: Any) -> Cmd:
        self.stdout = writer
        return self

    def set_stderr(self, writer: Any) -> Cmd:
        self.stderr = writer
        return self


class Cmder(ABC):
    """A factory of commands."""

    @abstractmethod
    def command(self, command: str, *args: str) -> Cmd:
        """Return a command running ``command`` with ``args``."""


class _Worker(threading.Thread):
    """A thread that keeps the exception its function raised."""

    def __init__(self, func: Callable[..., Any], *call_args: Any) -> None:
        super().__init__(daemon=True)
        self._func = func
        self._call_args = call_args
        self.error: BaseException | None = None

    def run(self) -> None:
        try:
            self._func(*self._call_args)
        except BaseException as err:  # noqa: BLE001 - re-raised by the caller
            self.error = err

    def raise_error(self) -> None:
        if self.error is not None:
            raise self.error


def _fileno(stream: Any) -> int | None:
    try:
        return stream.fileno()
    except (AttributeError, OSError, ValueError):
        return None


def _input_target(stream: Any) -> tuple[Any, bool]:
    if stream is None:
        return subprocess.DEVNULL, False
    fd = _fileno(stream)
    if fd is not None:
        return fd, False
    return subprocess.PIPE, True


def _output_target(stream: Any) -> tuple[Any, bool]:
    if stream is None:
        return subprocess.DEVNULL, False
    fd = _fileno(stream)
    if fd is not None:
        flush = getattr(stream, "flush", None)
        if flush is not None:
            flush()
        return fd, False
    return subprocess.PIPE, True


def _close_quietly(stream: IO[Any]) -> None:
    try:
        stream.close()
    except OSError:
        pass


def _feed(reader: Any, pipe: IO[bytes]) -> None:
    try:
        while True:
            data = reader.read(_CHUNK)
            if not data:
                break
            if isinstance(data, str):
                data = data.encode()
            pipe.write(data)
    except BrokenPipeError:
        pass
    finally:
        _close_quietly(pipe)


def _drain(pipe: Any, writer: Any) -> None:
    decoder = None
    if isinstance(writer, io.TextIOBase):
        decoder = io.IncrementalNewlineDecoder(None, translate=False)
        utf8 = __import_utf8_decoder()
    try:
        while chunk := pipe.read1(_CHUNK):
            writer.write(utf8.decode(chunk) if decoder is not None else chunk)
        if decoder is not None:
            tail = utf8.decode(b"", final=True)
            if tail:
                writer.write(tail)
    finally:
        pipe.close()


def __import_utf8_decoder() -> Any:
    import codecs

    return codecs.getincrementaldecoder("utf-8")(errors="replace")


def _parse_env(entries: list[str] | None) -> dict[str, str] | None:
    if entries is None:
        return None
    env: dict[str, str] = {}
    for entry in entries:
        key, _, value = entry.partition("=")
        env[key] = value
    return env


class LocalCmd(Cmd):
    """A command run as a local process."""

    def __init__(self, name: str, *args: str) -> None:
        super().__init__()
        self.name = name
        self.args = [name, *args]

    def run(self) -> None:
        logger.debug("Running: %s %s", self.name, self.args)
        stdin_arg, pump_in = _input_target(self.stdin)
        stdout_arg, pump_out = _output_target(self.stdout)
        if self.stdout is not None and self.stdout is self.stderr:
            stderr_arg, pump_err = subprocess.STDOUT, False
        else:
            stderr_arg, pump_err = _output_target(self.stderr)
        try:
            proc = subprocess.Popen(
                self.args,
                stdin=stdin_arg,
                stdout=stdout_arg,
                stderr=stderr_arg,
                env=_parse_env(self.env),
            )
        except OSError as err:
            raise CommandError(
                f"failed to start {self.name!r}: {err}", command=self.args
            ) from err

        workers = []
        if pump_in:
            workers.append(_Worker(_feed, self.stdin, proc.stdin))
        if pump_out:
            workers.append(_Worker(_drain, proc.stdout, self.stdout))
        if pump_err:
            workers.append(_Worker(_drain, proc.stderr, self.stderr))
        for worker in workers:
            worker.start()
        returncode = proc.wait()
        for worker in workers:
            worker.join()

        if returncode != 0:
            raise CommandError(
                f"command {self.args!r} exited with status {returncode}",
                command=self.args,
                returncode=returncode,
            )
        for worker in workers:
            worker.raise_error()


class LocalCmder(Cmder):
    """Creates LocalCmd instances."""

    def command(self, command: str, *args: str) -> Cmd:
        return LocalCmd(command, *args)


DEFAULT_CMDER = LocalCmder()


def command(command: str, *args: str) -> Cmd:
    """Return a command from the default (local) cmder."""
    return DEFAULT_CMDER.command(command, *args)


def _split_lines(data: bytes) -> list[str]:
    text = data.decode("utf-8", errors="replace")
    if not text:
        return []
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def combined_output_lines(cmd: Cmd) -> list[str]:
    """Run ``cmd`` and return its combined stdout and stderr as lines.

    On failure the raised CommandError carries the lines in ``output``.
    """
    buffer = io.BytesIO()
    cmd.set_stdout(buffer)
    cmd.set_stderr(buffer)
    try:
        cmd.run()
    except CommandError as err:
        err.output = _split_lines(buffer.getvalue())
        raise
    return _split_lines(buffer.getvalue())


def inherit_output(cmd: Cmd) -> Cmd:
    """Send ``cmd``'s output to this process's stdout and stderr."""
    cmd.set_stderr(sys.stderr)
    cmd.set_stdout(sys.stdout)
    return cmd


def run_logging_output_on_fail(cmd: Cmd) -> None:
    """Run ``cmd``, logging its output as errors if it fails."""
    buffer = io.BytesIO()
    cmd.set_stdout(buffer)
    cmd.set_stderr(buffer)
    try:
        cmd.run()
    except CommandError:
        logger.error("failed with:")
        for line in _split_lines(buffer.getvalue()):
            logger.error(line)
        raise


def run_with_stdout_reader(cmd: Cmd, reader_func: Callable[[IO[bytes]], Any]) -> None:
    """Run ``cmd`` with its stdout piped to ``reader_func``."""
    read_fd, write_fd = os.pipe()
    with os.fdopen(read_fd, "rb") as reader, os.fdopen(write_fd, "wb") as writer:
        cmd.set_stdout(writer)
        worker = _Worker(reader_func, reader)
        worker.start()
        try:
            cmd.run()
        finally:
            _close_quietly(writer)
            worker.join()
        worker.raise_error()


def run_with_stdin_writer(cmd: Cmd, writer_func: Callable[[IO[bytes]], Any]) -> None:
    """Run ``cmd`` with what ``writer_func`` writes piped to its stdin."""
    read_fd, write_fd = os.pipe()
    with os.fdopen(read_fd, "rb") as reader, os.fdopen(write_fd, "wb") as writer:
        cmd.set_stdin(reader)

        def feed() -> None:
            try:
                writer_func(writer)
            finally:
                _close_quietly(writer)

        worker = _Worker(feed)
        worker.start()
        try:
            cmd.run()
        finally:
            _close_quietly(reader)
            worker.join()
        worker.raise_error()