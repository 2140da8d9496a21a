"""gotestmain — Generates the Go test main used by Bazel's go_test rule."""

from gotestmain.analyzer import (
    analyze,
    analyze_file,
    classify_func,
    effective_package_ref,
    extract_examples,
)
from gotestmain.buildctx import (
    BuildConstraintError,
    BuildContext,
    filter_files,
)
from gotestmain.cases import (
    ArgumentShapeError,
    CaseBuilder,
    CaseModelError,
    Cases,
    Example,
    FileAnalysis,
    Import,
    SourceFile,
    TestCase,
    UnknownImportError,
    parse_imports,
    parse_sources,
)
from gotestmain.emitter import OutputWriteError, go_quote, render, write_output
from gotestmain.errors import GeneratorError
from gotestmain.generator import (
    GenerationResult,
    GeneratorConfig,
    collect_cases,
    generate,
)
from gotestmain.harness import (
    Engine,
    HarnessRuntime,
    HarnessStartupError,
    TestRun,
    tests_in_shard,
)
from gotestmain.scanner import (
    GoFile,
    GoSyntaxError,
    SourceReadError,
    parse_file,
    parse_source,
)

__all__ = [
    # Errors
    "GeneratorError",
    # Scanner
    "parse_source",
    "parse_file",
    "GoFile",
    "GoSyntaxError",
    "SourceReadError",
    # Build context
    "BuildContext",
    "filter_files",
    "BuildConstraintError",
    # Source Analyzer
    "analyze",
    "analyze_file",
    "classify_func",
    "effective_package_ref",
    "extract_examples",
    # Case Model
    "CaseBuilder",
    "Cases",
    "Import",
    "SourceFile",
    "TestCase",
    "Example",
    "FileAnalysis",
    "parse_imports",
    "parse_sources",
    "ArgumentShapeError",
    "CaseModelError",
    "UnknownImportError",
    # Emitter
    "render",
    "go_quote",
    "write_output",
    "OutputWriteError",
    # Harness runtime
    "Engine",
    "TestRun",
    "HarnessRuntime",
    "HarnessStartupError",
    "tests_in_shard",
    # Generator
    "GeneratorConfig",
    "GenerationResult",
    "collect_cases",
    "generate",
]
