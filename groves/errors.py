# groves — Declarative fleets of git worktrees.
#
# Copyright (c) 2026 Max Rheiner / Somniacs AG
#
# Licensed under the MIT License. You may obtain a copy
# of the license at:
#
#     https://opensource.org/licenses/MIT
#
# Unless required by applicable law or agreed to in writing,
# software distributed under the License is distributed on an
# "AS IS" BASIS, WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND.

"""Exception types shared across groves."""

from __future__ import annotations


class GrovesError(Exception):
    """Base class for all groves failures shown to the user."""


class GitNotAllowedError(GrovesError):
    """A git subcommand outside the allow-list was requested."""

    def __init__(self, subcommand: str):
        self.subcommand = subcommand
        super().__init__(f"git subcommand not allowed: {subcommand!r}")


class GitCommandError(GrovesError):
    """A git subprocess exited non-zero or timed out."""

    def __init__(self, args: list[str] | tuple[str, ...], returncode: int | None,
                 stderr: str = "", stdout: str = "", message: str | None = None):
        self.args_list = list(args)
        self.returncode = returncode
        self.stderr = stderr
        self.stdout = stdout
        cmd = " ".join(["git", *self.args_list])
        if message is None:
            detail = stderr.strip() or stdout.strip()
            message = f"{cmd} failed (exit {returncode})"
            if detail:
                message += f": {detail}"
        else:
            message = f"{cmd}: {message}"
        super().__init__(message)


class ManifestError(GrovesError):
    """The manifest file could not be read or parsed."""


class ValidationError(GrovesError):
    """The manifest failed validation; carries every issue found."""

    def __init__(self, result):
        self.result = result
        super().__init__("manifest validation failed")


class DestructiveConfirmationRequired(GrovesError):
    """Destructive changes were planned but confirmation is disabled."""

    def __init__(self):
        super().__init__("destructive changes require confirmation")


class RemovalBlockedError(GrovesError):
    """A removal was refused because it would lose local work."""


class SagaError(GrovesError):
    """A saga step failed and its compensation failed as well."""

    def __init__(self, cause: BaseException, rollback_error: BaseException):
        self.cause = cause
        self.rollback_error = rollback_error
        super().__init__(f"{cause} (rollback failed: {rollback_error})")
