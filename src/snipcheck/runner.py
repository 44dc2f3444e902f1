# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Isolated compilation of normalized units through external toolchains."""

import concurrent.futures
import hashlib
import logging
import os
import shutil
import signal
import subprocess
import tempfile
import threading
from collections.abc import Iterable
from pathlib import Path

from snipcheck.config import LanguageConfig, ValidatorConfig
from snipcheck.diagnostics import RawDiagnostic, parse_machine_output, parse_regex_output
from snipcheck.model import Diagnostic, NormalizedUnit, UnitResult

logger = logging.getLogger(__name__)

TOOL_FAILURE_CODE = "TOOL_FAILURE"
_OUTPUT_TAIL_CHARS = 400


class ToolFailure(RuntimeError):
    """Represent a compiler crash, timeout or launch failure for one unit."""


class ToolchainNotFoundError(RuntimeError):
    """Represent a configured language whose compiler cannot be resolved."""

    def __init__(self, language: str, executable: str, reason: str | None = None) -> None:
        super().__init__(
            f"No toolchain found for language '{language}': "
            + (reason or f"'{executable}' is not executable")
        )
        self.language = language
        self.executable = executable


class ResultCollector:
    """Collect unit results from worker threads through a single appender."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._results: list[UnitResult] = []

    def append(self, result: UnitResult) -> None:
        with self._lock:
            self._results.append(result)

    def results(self) -> list[UnitResult]:
        """Return results sorted by document path then ordinal."""
        with self._lock:
            return sorted(self._results, key=lambda result: result.key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._results)


class CompileRunner:
    """Compile normalized units in isolation and capture their diagnostics."""

    def __init__(
        self,
        config: ValidatorConfig,
        progress_batch_size: int = 10,
    ) -> None:
        """Initialize runner.

        Args:
            config: Validator configuration with toolchains, timeout and pool size.
            progress_batch_size: Emit a progress log line every N completed units.

        Raises:
            ValueError: If ``progress_batch_size`` is not greater than zero.
        """
        if progress_batch_size <= 0:
            raise ValueError("progress_batch_size must be > 0")
        self._config = config
        self._progress_batch_size = progress_batch_size
        self._resolved: dict[str, str] = {}
        self._resolve_lock = threading.Lock()

    def ensure_toolchain(self, language: str) -> str:
        """Resolve the executable of a language's toolchain.

        Args:
            language: Canonical language name.

        Returns:
            Resolved executable path.

        Raises:
            ToolchainNotFoundError: If the language has no usable executable.
        """
        with self._resolve_lock:
            if language in self._resolved:
                return self._resolved[language]
            settings = self._config.language(language)
            if settings is None or not settings.command:
                raise ToolchainNotFoundError(language=language, executable="")
            if settings.requires_project_dir and settings.project_dir is None:
                raise ToolchainNotFoundError(
                    language=language,
                    executable=settings.command[0],
                    reason=f"languages.{language}.project_dir must name a project that "
                    "resolves the template imports",
                )
            executable = settings.command[0]
            resolved = shutil.which(executable)
            if resolved is None:
                logger.warning(
                    f"Toolchain not found (language={language} executable={executable})"
                )
                raise ToolchainNotFoundError(language=language, executable=executable)
            self._resolved[language] = resolved
            logger.debug(f"Toolchain resolved (language={language} executable={resolved})")
            return resolved

    def run(self, unit: NormalizedUnit) -> UnitResult:
        """Compile one unit and translate its diagnostics onto the snippet.

        Tool problems never propagate: they become a single ``tool_failure``
        diagnostic so other units are unaffected.

        Args:
            unit: Normalized unit to compile.

        Returns:
            Unit result with snippet-relative diagnostics.
        """
        snippet = unit.snippet
        settings = self._config.language(snippet.language)
        if settings is None:
            return self._tool_failure(unit, f"No toolchain configured for '{snippet.language}'")
        try:
            executable = self.ensure_toolchain(snippet.language)
            raw_diagnostics = self._compile(unit, settings, executable)
        except (ToolFailure, ToolchainNotFoundError) as exc:
            logger.warning(
                f"Tool failure (document={snippet.document_path} ordinal={snippet.ordinal} "
                f"language={snippet.language} error={exc})"
            )
            return self._tool_failure(unit, str(exc))

        diagnostics = []
        for raw in raw_diagnostics:
            line, column = unit.line_map.translate(raw.line, raw.column)
            diagnostics.append(
                Diagnostic(
                    severity="error" if raw.severity == "error" else "warning",
                    message=raw.message,
                    line=line,
                    column=column,
                    code=raw.code,
                    kind="compile",
                    document_path=snippet.document_path,
                    ordinal=snippet.ordinal,
                )
            )
        return UnitResult(
            document_path=snippet.document_path,
            ordinal=snippet.ordinal,
            diagnostics=tuple(diagnostics),
        )

    def run_all(
        self,
        units: Iterable[NormalizedUnit],
        collector: ResultCollector | None = None,
    ) -> ResultCollector:
        """Compile units across a bounded worker pool.

        Units are submitted as the iterable produces them, so a lazy producer
        can stop early while submitted units finish normally.

        Args:
            units: Units to compile.
            collector: Collector receiving results; a new one when omitted.

        Returns:
            Collector holding one result per unit.
        """
        collector = collector if collector is not None else ResultCollector()
        with concurrent.futures.ThreadPoolExecutor(
            max_workers=self._config.max_workers
        ) as executor:
            future_to_unit = {executor.submit(self.run, unit): unit for unit in units}
            total = len(future_to_unit)
            completed = 0
            failed = 0
            for future in concurrent.futures.as_completed(future_to_unit):
                unit = future_to_unit[future]
                try:
                    result = future.result()
                except Exception as exc:
                    logger.warning(
                        f"Unit compilation crashed (document={unit.snippet.document_path} "
                        f"ordinal={unit.snippet.ordinal} error={exc!r})"
                    )
                    result = self._tool_failure(unit, f"Unexpected runner error: {exc!r}")
                collector.append(result)
                completed += 1
                if any(d.severity == "error" for d in result.diagnostics):
                    failed += 1
                if completed % self._progress_batch_size == 0 or completed == total:
                    self._log_progress(completed=completed, total=total, failed=failed)
        return collector

    def _compile(
        self, unit: NormalizedUnit, settings: LanguageConfig, executable: str
    ) -> list[RawDiagnostic]:
        project_dir = settings.project_dir
        if project_dir is not None and not project_dir.is_dir():
            raise ToolFailure(f"Project directory does not exist: {project_dir}")
        digest = hashlib.md5(unit.text.encode("utf-8")).hexdigest()[:12]  # noqa: S324
        try:
            with tempfile.TemporaryDirectory(
                prefix="snipcheck-", dir=str(project_dir) if project_dir else None
            ) as tmp:
                unit_path = Path(tmp) / f"snippet_{digest}{settings.file_extension}"
                unit_path.write_text(unit.text, encoding="utf-8")
                argv = _build_argv(settings.command, executable, unit_path)
                returncode, output = self._invoke(argv=argv, cwd=Path(tmp), settings=settings)
        except OSError as exc:
            raise ToolFailure(f"Failed to prepare unit file: {exc}") from exc

        if settings.diagnostic_format == "regex":
            parsed = parse_regex_output(output, settings.diagnostic_pattern or "")
        else:
            parsed = parse_machine_output(output)
        own = [raw for raw in parsed if not raw.file or Path(raw.file).name == unit_path.name]
        if returncode != 0 and not own:
            tail = output.strip()[-_OUTPUT_TAIL_CHARS:]
            raise ToolFailure(
                f"{Path(argv[0]).name} exited with status {returncode} without diagnostics"
                + (f": {tail}" if tail else "")
            )
        return own

    def _invoke(
        self, argv: list[str], cwd: Path, settings: LanguageConfig
    ) -> tuple[int, str]:
        """Run the toolchain command in its own process group.

        Raises:
            ToolFailure: If the process cannot start or exceeds the timeout.
        """
        env = dict(os.environ)
        env.update(settings.env)
        timeout = self._config.timeout_seconds
        try:
            process = subprocess.Popen(
                argv,
                cwd=str(cwd),
                env=env,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                start_new_session=True,
            )
        except OSError as exc:
            raise ToolFailure(f"Failed to start {argv[0]}: {exc}") from exc
        try:
            stdout, stderr = process.communicate(timeout=timeout)
        except subprocess.TimeoutExpired as exc:
            _kill_process_group(process)
            process.communicate()
            raise ToolFailure(f"{Path(argv[0]).name} timed out after {timeout:g}s") from exc
        return process.returncode, f"{stdout}\n{stderr}"

    def _tool_failure(self, unit: NormalizedUnit, message: str) -> UnitResult:
        snippet = unit.snippet
        return UnitResult(
            document_path=snippet.document_path,
            ordinal=snippet.ordinal,
            diagnostics=(
                Diagnostic(
                    severity="error",
                    message=message,
                    line=1,
                    column=1,
                    code=TOOL_FAILURE_CODE,
                    kind="tool_failure",
                    document_path=snippet.document_path,
                    ordinal=snippet.ordinal,
                ),
            ),
        )

    def _log_progress(self, completed: int, total: int, failed: int) -> None:
        percent = 100.0 if total == 0 else (completed / total) * 100.0
        logger.info(
            "snippet_validation_progress completed=%s total=%s failed=%s percent=%.2f",
            completed,
            total,
            failed,
            percent,
        )


def _build_argv(command: tuple[str, ...], executable: str, unit_path: Path) -> list[str]:
    """Substitute placeholders into a toolchain command.

    ``{file}`` becomes the unit path and ``{dir}`` its directory; the unit
    path is appended when the command uses neither.
    """
    substituted = [
        part.replace("{file}", str(unit_path)).replace("{dir}", str(unit_path.parent))
        for part in command[1:]
    ]
    argv = [executable, *substituted]
    if not any("{file}" in part or "{dir}" in part for part in command[1:]):
        argv.append(str(unit_path))
    return argv


def _kill_process_group(process: subprocess.Popen[str]) -> None:
    """Kill a timed-out process together with any children it spawned."""
    if os.name == "posix":
        try:
            os.killpg(process.pid, signal.SIGKILL)
        except ProcessLookupError:
            logger.debug(f"Process group already exited (pid={process.pid})")
        return
    process.kill()
