# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Static checker for Python snippets.

Run as ``python -m snipcheck.pycheck FILE``. The checker compiles the file,
then resolves every imported module, imported name and module attribute
reference against the interpreter's installed packages without executing
the snippet itself. Findings are printed in the machine format shared with
``dart analyze --format=machine``.
"""

import argparse
import ast
import importlib
import importlib.util
import sys
import warnings
from dataclasses import dataclass
from types import ModuleType
from typing import Any

import Levenshtein

from snipcheck.diagnostics import format_machine_record

SUGGESTION_THRESHOLD = 0.7

_IMPORT_GUARDS = {"ImportError", "ModuleNotFoundError", "Exception", "BaseException"}
_DEPRECATION_CATEGORIES = (DeprecationWarning, PendingDeprecationWarning)


@dataclass(frozen=True)
class Finding:
    """Represent one checker finding in unit coordinates."""

    severity: str
    kind: str
    code: str
    line: int
    column: int
    length: int
    message: str


def check_source(source: str, filename: str) -> list[Finding]:
    """Check one Python source text.

    Args:
        source: Python source code.
        filename: File name used in syntax error reports.

    Returns:
        Findings sorted by position.
    """
    try:
        tree = ast.parse(source, filename=filename)
        compile(tree, filename, "exec")
    except SyntaxError as exc:
        return [
            Finding(
                severity="ERROR",
                kind="SYNTACTIC_ERROR",
                code="INVALID_SYNTAX",
                line=exc.lineno or 1,
                column=exc.offset or 1,
                length=1,
                message=exc.msg,
            )
        ]
    checker = _ReferenceChecker()
    checker.visit(tree)
    return sorted(checker.findings, key=lambda finding: (finding.line, finding.column))


def suggest(name: str, candidates: list[str]) -> str | None:
    """Return the closest public candidate name, if it is close enough."""
    best: str | None = None
    best_ratio = 0.0
    for candidate in sorted(candidates):
        if candidate.startswith("_"):
            continue
        ratio = float(Levenshtein.ratio(name, candidate))
        if ratio > best_ratio:
            best, best_ratio = candidate, ratio
    return best if best_ratio >= SUGGESTION_THRESHOLD else None


class _ReferenceChecker(ast.NodeVisitor):
    """Resolve imports and module attribute references of one module."""

    def __init__(self) -> None:
        self.findings: list[Finding] = []
        self._modules: dict[str, ModuleType] = {}
        self._guard_depth = 0

    def visit_Try(self, node: ast.Try) -> None:
        guarded = any(_handler_guards_imports(handler) for handler in node.handlers)
        if guarded:
            self._guard_depth += 1
        for statement in node.body:
            self.visit(statement)
        if guarded:
            self._guard_depth -= 1
        for part in (*node.handlers, *node.orelse, *node.finalbody):
            self.visit(part)

    def visit_Import(self, node: ast.Import) -> None:
        for alias in node.names:
            module = self._import(alias.name, node)
            if module is None:
                continue
            if alias.asname:
                self._modules[alias.asname] = module
            else:
                root = alias.name.split(".")[0]
                self._modules[root] = sys.modules.get(root, module)

    def visit_ImportFrom(self, node: ast.ImportFrom) -> None:
        if node.level or not node.module:
            return
        module = self._import(node.module, node)
        if module is None:
            return
        for alias in node.names:
            if alias.name == "*":
                continue
            position: ast.AST = alias if hasattr(alias, "lineno") else node
            found, value = self._lookup(module, alias.name, position)
            if not found:
                submodule = self._find_submodule(f"{node.module}.{alias.name}")
                if submodule is not None:
                    self._modules[alias.asname or alias.name] = submodule
                    continue
                if self._guard_depth:
                    continue
                self._report_missing(
                    code="UNDEFINED_IMPORTED_NAME",
                    name=alias.name,
                    owner=node.module,
                    candidates=dir(module),
                    node=position,
                )
            elif isinstance(value, ModuleType):
                self._modules[alias.asname or alias.name] = value

    def visit_Name(self, node: ast.Name) -> None:
        if isinstance(node.ctx, (ast.Store, ast.Del)):
            self._modules.pop(node.id, None)

    def visit_Attribute(self, node: ast.Attribute) -> None:
        chain = _attribute_chain(node)
        if (
            chain is None
            or chain[0] not in self._modules
            or not isinstance(node.ctx, ast.Load)
        ):
            self.generic_visit(node)
            return
        base, attributes = chain[0], chain[1:]
        current: Any = self._modules[base]
        owner = base
        for attribute in attributes:
            found, value = self._lookup(
                current, attribute, node, qualified=f"{owner}.{attribute}"
            )
            if not found:
                self._report_missing(
                    code="UNDEFINED_GETTER",
                    name=attribute,
                    owner=owner,
                    candidates=dir(current),
                    node=node,
                )
                return
            current = value
            owner = f"{owner}.{attribute}"

    def _import(self, module_name: str, node: ast.AST) -> ModuleType | None:
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            try:
                module = importlib.import_module(module_name)
            except ImportError:
                if not self._guard_depth:
                    self._add(
                        "ERROR",
                        "COMPILE_TIME_ERROR",
                        "URI_DOES_NOT_EXIST",
                        node,
                        f"Target of URI doesn't exist: '{module_name}'.",
                    )
                return None
            except Exception as exc:  # noqa: BLE001
                self._add(
                    "ERROR",
                    "COMPILE_TIME_ERROR",
                    "IMPORT_FAILED",
                    node,
                    f"Importing '{module_name}' failed: {type(exc).__name__}: {exc}",
                )
                return None
        self._report_deprecations(caught, node, module_name)
        return module

    def _lookup(
        self, owner: Any, name: str, node: ast.AST, qualified: str | None = None
    ) -> tuple[bool, Any]:
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            try:
                value = getattr(owner, name)
            except AttributeError:
                return False, None
            except Exception as exc:  # noqa: BLE001
                self._add(
                    "ERROR",
                    "COMPILE_TIME_ERROR",
                    "ATTRIBUTE_LOOKUP_FAILED",
                    node,
                    f"Looking up '{name}' failed: {type(exc).__name__}: {exc}",
                )
                return True, None
        owner_name = getattr(owner, "__name__", type(owner).__name__)
        self._report_deprecations(caught, node, qualified or f"{owner_name}.{name}")
        return True, value

    def _find_submodule(self, dotted: str) -> ModuleType | None:
        try:
            spec = importlib.util.find_spec(dotted)
        except (ImportError, ValueError):
            return None
        if spec is None:
            return None
        try:
            return importlib.import_module(dotted)
        except ImportError:
            return None

    def _report_missing(
        self, code: str, name: str, owner: str, candidates: list[str], node: ast.AST
    ) -> None:
        message = f"The name '{name}' isn't defined in '{owner}'."
        suggestion = suggest(name, candidates)
        if suggestion:
            message += f" Did you mean '{suggestion}'?"
        self._add("ERROR", "COMPILE_TIME_ERROR", code, node, message)

    def _report_deprecations(
        self, caught: list[warnings.WarningMessage], node: ast.AST, subject: str
    ) -> None:
        for warning in caught:
            if not issubclass(warning.category, _DEPRECATION_CATEGORIES):
                continue
            self._add(
                "WARNING",
                "HINT",
                "DEPRECATED_MEMBER_USE",
                node,
                f"'{subject}' is deprecated: {warning.message}",
            )

    def _add(self, severity: str, kind: str, code: str, node: ast.AST, message: str) -> None:
        self.findings.append(
            Finding(
                severity=severity,
                kind=kind,
                code=code,
                line=getattr(node, "lineno", 1),
                column=getattr(node, "col_offset", 0) + 1,
                length=max(
                    1,
                    (getattr(node, "end_col_offset", 0) or 0)
                    - getattr(node, "col_offset", 0),
                ),
                message=message,
            )
        )


def _attribute_chain(node: ast.Attribute) -> list[str] | None:
    parts: list[str] = []
    current: ast.expr = node
    while isinstance(current, ast.Attribute):
        parts.append(current.attr)
        current = current.value
    if not isinstance(current, ast.Name):
        return None
    parts.append(current.id)
    return list(reversed(parts))


def _handler_guards_imports(handler: ast.ExceptHandler) -> bool:
    if handler.type is None:
        return True
    names = handler.type.elts if isinstance(handler.type, ast.Tuple) else [handler.type]
    return any(isinstance(name, ast.Name) and name.id in _IMPORT_GUARDS for name in names)


def main(argv: list[str] | None = None) -> int:
    """Check one file and print machine-format findings.

    Returns:
        1 when any finding is an error, else 0.
    """
    parser = argparse.ArgumentParser(prog="snipcheck.pycheck")
    parser.add_argument("file", help="Python file to check.")
    args = parser.parse_args(argv)
    try:
        with open(args.file, encoding="utf-8") as handle:
            source = handle.read()
    except (OSError, UnicodeDecodeError) as exc:
        sys.stderr.write(f"Cannot read {args.file}: {exc}\n")
        return 2
    findings = check_source(source, args.file)
    for finding in findings:
        sys.stdout.write(
            format_machine_record(
                severity=finding.severity,
                kind=finding.kind,
                code=finding.code,
                file=args.file,
                line=finding.line,
                column=finding.column,
                length=finding.length,
                message=finding.message,
            )
            + "\n"
        )
    return 1 if any(finding.severity == "ERROR" for finding in findings) else 0


if __name__ == "__main__":
    raise SystemExit(main())
