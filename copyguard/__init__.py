"""copyguard: static verifier for deep-copy procedures.

Mark a copy procedure with :func:`deep_copy`; copyguard checks that

* its single parameter type, and every type reachable from it through
  public instance members, is closed (``@typing.final``, an enum or a
  primitive), and
* its body reads every such member.

Members annotated ``Annotated[T, CopyIgnore]`` (or properties decorated
with :func:`copy_ignore`) are exempt from both checks.

Submodules
----------
symbols
    Parsed modules, classes, fields and annotation resolution.
type_graph
    ``TypeNode`` / ``Member`` / ``AccessPath`` and ``TypeGraphBuilder``.
members, closedness, access_paths, completeness
    The verifiers.
checkers
    Rules, diagnostics, suppressions and the ``CheckerRunner``.
reporter
    Text / GCC / JSON output.
config
    ``Config`` and the ``.copyguard`` S-expression file format.
main
    ``copyguard`` command-line tool.
"""

__version__ = "0.3.0"

from copyguard.markers import CopyIgnore, copy_ignore, deep_copy  # noqa: E402
from copyguard.checkers import (  # noqa: E402
    CheckerRunner,
    CheckerRunResults,
    Diagnostic,
    DiagnosticSeverity,
)
from copyguard.config import Config, load_config, parse_config  # noqa: E402
from copyguard.errors import (  # noqa: E402
    ConfigError,
    CopyGuardError,
    OperationCancelled,
    SourceError,
)

__all__ = [
    "__version__",
    "deep_copy",
    "copy_ignore",
    "CopyIgnore",
    "CheckerRunner",
    "CheckerRunResults",
    "Diagnostic",
    "DiagnosticSeverity",
    "Config",
    "load_config",
    "parse_config",
    "CopyGuardError",
    "ConfigError",
    "SourceError",
    "OperationCancelled",
]
