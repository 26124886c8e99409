from __future__ import annotations

import asyncio
import json
import logging
import shutil
import time
from contextlib import suppress
from dataclasses import dataclass

from codepair.schemas.execution import OutputLine, OutputType

logger = logging.getLogger(__name__)

RUNTIME_PROBE_TIMEOUT_SECONDS = 10.0
KILL_GRACE_SECONDS = 2.0
READ_CHUNK_BYTES = 64 * 1024

# Runs the submitted source (read from stdin) with a console that writes one
# JSON record per call, so log levels survive the process boundary.
JAVASCRIPT_HARNESS = r"""
const formatValue = (value) => {
  if (value === null) return 'null';
  if (value === undefined) return 'undefined';
  switch (typeof value) {
    case 'string':
      return value;
    case 'number':
    case 'boolean':
      return String(value);
    case 'function':
      return `[Function: ${value.name || 'anonymous'}]`;
    case 'object':
      try {
        if (Array.isArray(value)) {
          return `[${value.map(formatValue).join(', ')}]`;
        }
        return JSON.stringify(value, null, 2);
      } catch (e) {
        return '[Object]';
      }
    default:
      return String(value);
  }
};

const emit = (type, args) => {
  const content = args.map(formatValue).join(' ');
  process.stdout.write(JSON.stringify({ type, content }) + '\n');
};

const sandboxConsole = {
  log: (...args) => emit('log', args),
  error: (...args) => emit('error', args),
  warn: (...args) => emit('warn', args),
  info: (...args) => emit('info', args),
};

const chunks = [];
process.stdin.on('data', (chunk) => chunks.push(chunk));
process.stdin.on('end', () => {
  const source = Buffer.concat(chunks).toString('utf8');
  try {
    new Function('console', `'use strict';\n${source}`)(sandboxConsole);
  } catch (error) {
    const name = (error && error.name) || 'Error';
    const message = error && error.message !== undefined ? error.message : String(error);
    emit('error', [`${name}: ${message}`]);
    if (error && error.stack) {
      for (const line of String(error.stack).split('\n').slice(1, 4)) {
        emit('error', [line.trim()]);
      }
    }
    process.exitCode = 1;
  }
});
"""


class RuntimeUnavailableError(RuntimeError):
    pass


class InterpreterRuntime:
    """An interpreter binary located and probed lazily, at most once.

    Concurrent first callers wait on the in-flight probe instead of starting
    their own. A failed probe is not cached.
    """

    def __init__(self, language: str, executable: str) -> None:
        self.language = language
        self.executable = executable
        self.version: str | None = None
        self.initializations = 0
        self._path: str | None = None
        self._lock = asyncio.Lock()

    @property
    def ready(self) -> bool:
        return self._path is not None

    async def ensure_ready(self) -> str:
        if self._path is not None:
            return self._path
        async with self._lock:
            if self._path is None:
                self.initializations += 1
                self._path = await self._initialize()
        return self._path

    async def _initialize(self) -> str:
        path = shutil.which(self.executable)
        if path is None:
            raise RuntimeUnavailableError(f"{self.language} runtime is unavailable")

        try:
            process = await asyncio.create_subprocess_exec(
                path,
                "--version",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
            output, _ = await asyncio.wait_for(
                process.communicate(),
                timeout=RUNTIME_PROBE_TIMEOUT_SECONDS,
            )
        except (OSError, TimeoutError) as exc:
            raise RuntimeUnavailableError(f"{self.language} runtime is unavailable") from exc

        if process.returncode != 0:
            raise RuntimeUnavailableError(f"{self.language} runtime is unavailable")

        self.version = output.decode("utf-8", errors="replace").strip()
        logger.info("Initialized %s runtime at %s (%s)", self.language, path, self.version)
        return path

    def command(self, path: str) -> list[str]:
        if self.language == "python":
            return [path, "-I", "-u", "-"]
        return [path, "-e", JAVASCRIPT_HARNESS]


class OutputCapture:
    """Splits both pipes into lines, in arrival order, within a line and byte budget.

    Once either budget is spent, ``limit_reached`` is set and further output is
    discarded; the readers keep draining the pipes so the child never blocks.
    """

    def __init__(self, max_lines: int, max_bytes: int) -> None:
        self.lines: list[tuple[str, str]] = []
        self.truncated = False
        self.limit_reached = asyncio.Event()
        self._max_lines = max_lines
        self._max_bytes = max_bytes
        self._bytes = 0
        self._pending: dict[str, bytes] = {"stdout": b"", "stderr": b""}

    def feed(self, stream: str, chunk: bytes) -> None:
        if self.truncated:
            return
        overflow = self._bytes + len(chunk) - self._max_bytes
        self._bytes += len(chunk)
        if overflow > 0:
            self._split(stream, chunk[: len(chunk) - overflow])
            self._append(stream, self._pending[stream])
            self._pending[stream] = b""
            self._stop()
            return
        self._split(stream, chunk)

    def finish(self) -> None:
        for stream, rest in self._pending.items():
            self._append(stream, rest)
            self._pending[stream] = b""

    def _split(self, stream: str, chunk: bytes) -> None:
        *complete, rest = (self._pending[stream] + chunk).split(b"\n")
        self._pending[stream] = rest
        for raw in complete:
            self._append(stream, raw)

    def _append(self, stream: str, raw: bytes) -> None:
        if self.truncated:
            return
        text = raw.decode("utf-8", errors="replace").rstrip("\r")
        if not text:
            return
        if len(self.lines) >= self._max_lines:
            self._stop()
            return
        self.lines.append((stream, text))

    def _stop(self) -> None:
        self.truncated = True
        self.limit_reached.set()


@dataclass(slots=True)
class _ProcessResult:
    lines: list[tuple[str, str]]
    returncode: int
    truncated: bool


async def _feed_stdin(stdin: asyncio.StreamWriter, data: bytes) -> None:
    try:
        stdin.write(data)
        await stdin.drain()
    except (BrokenPipeError, ConnectionResetError):
        pass
    finally:
        stdin.close()


async def _pump(stream: asyncio.StreamReader, name: str, capture: OutputCapture) -> None:
    while True:
        chunk = await stream.read(READ_CHUNK_BYTES)
        if not chunk:
            return
        capture.feed(name, chunk)


def _kill(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        with suppress(ProcessLookupError):
            process.kill()


def _line(line_type: OutputType, content: str) -> OutputLine:
    return OutputLine(type=line_type, content=content)


def _parse_harness_line(raw: str) -> OutputLine:
    try:
        record = json.loads(raw)
    except ValueError:
        return _line("log", raw)
    if not isinstance(record, dict):
        return _line("log", raw)
    line_type = record.get("type")
    if line_type not in {"log", "error", "warn", "info"}:
        return _line("log", raw)
    return _line(line_type, str(record.get("content", "")))


class CodeExecutor:
    """Runs source text in a fresh interpreter subprocess and reports output lines.

    ``execute`` never raises: every failure is reported as an ``error`` line.
    """

    def __init__(
        self,
        *,
        python_executable: str,
        node_executable: str,
        timeout_seconds: float = 5.0,
        max_output_lines: int = 500,
        max_output_bytes: int = 1_000_000,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        self.max_output_lines = max_output_lines
        self.max_output_bytes = max_output_bytes
        self.runtimes: dict[str, InterpreterRuntime] = {
            "python": InterpreterRuntime("python", python_executable),
            "javascript": InterpreterRuntime("javascript", node_executable),
        }

    async def execute(self, code: str, language: str) -> list[OutputLine]:
        runtime = self.runtimes.get(language)
        if runtime is None:
            return [_line("error", f"Unsupported language: {language}")]

        try:
            path = await runtime.ensure_ready()
        except RuntimeUnavailableError as exc:
            logger.warning("Cannot execute %s code: %s", language, exc)
            return [_line("error", str(exc))]

        started = time.perf_counter()
        try:
            result = await self._run(runtime.command(path), code)
        except TimeoutError:
            logger.info("%s execution timed out after %ss", language, self.timeout_seconds)
            return [_line("error", f"Execution timed out after {self.timeout_seconds:g}s")]
        except OSError as exc:
            logger.warning("Failed to start %s runtime: %s", language, exc)
            return [_line("error", f"Failed to start {language} runtime: {exc}")]
        elapsed_ms = round((time.perf_counter() - started) * 1000)

        return self._collect(language, result, elapsed_ms)

    async def _run(self, command: list[str], code: str) -> _ProcessResult:
        process = await asyncio.create_subprocess_exec(
            *command,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        capture = OutputCapture(self.max_output_lines, self.max_output_bytes)
        io_tasks = [
            asyncio.create_task(_feed_stdin(process.stdin, code.encode("utf-8"))),
            asyncio.create_task(_pump(process.stdout, "stdout", capture)),
            asyncio.create_task(_pump(process.stderr, "stderr", capture)),
        ]
        exited = asyncio.create_task(process.wait())
        limited = asyncio.create_task(capture.limit_reached.wait())
        try:
            done, _ = await asyncio.wait(
                {exited, limited},
                timeout=self.timeout_seconds,
                return_when=asyncio.FIRST_COMPLETED,
            )
            if exited not in done:
                _kill(process)
            # The child is gone; the readers only have to reach EOF.
            try:
                await asyncio.wait_for(
                    asyncio.gather(exited, *io_tasks, return_exceptions=True),
                    timeout=KILL_GRACE_SECONDS,
                )
            except TimeoutError:
                logger.warning("Output pipes of pid %s still open after kill", process.pid)
        finally:
            limited.cancel()
            _kill(process)
            for task in (exited, *io_tasks):
                task.cancel()

        if not done:
            raise TimeoutError
        capture.finish()
        return _ProcessResult(
            lines=capture.lines,
            returncode=process.returncode if process.returncode is not None else -1,
            truncated=capture.truncated,
        )

    def _collect(self, language: str, result: _ProcessResult, elapsed_ms: int) -> list[OutputLine]:
        lines: list[OutputLine] = []
        for stream, raw in result.lines:
            if stream == "stderr":
                lines.append(_line("error", raw))
            elif language == "javascript":
                lines.append(_parse_harness_line(raw))
            else:
                lines.append(_line("log", raw))

        if result.truncated:
            lines.append(
                _line("warn", f"Output limit reached after {len(lines)} lines; execution stopped")
            )
            return lines

        if result.returncode != 0:
            if not any(item.type == "error" for item in lines):
                lines.append(_line("error", f"Process exited with code {result.returncode}"))
            return lines

        if lines:
            lines.append(_line("success", f"✓ Execution completed in {elapsed_ms}ms"))
        else:
            lines.append(_line("info", f"Code executed successfully in {elapsed_ms}ms (no output)"))
        return lines
