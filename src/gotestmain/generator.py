"""Generator — Orchestrates one harness generation run.

Wires argument parsing → build-constraint filtering → Source Analyzer →
Case Model Builder → Harness Emitter → output sink into a single entry
point.

Three stages:
  1. Collect: parse ``alias=path`` / ``alias=file`` pairs, filter sources
  2. Analyze: classify each file and accumulate cases in discovery order
  3. Emit: render the program and write it

Any error aborts the whole run; no partial output is produced.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from gotestmain.analyzer import analyze_file
from gotestmain.buildctx import BuildContext, filter_files
from gotestmain.cases import CaseBuilder, Cases, parse_imports, parse_sources
from gotestmain.emitter import render, write_output

logger = logging.getLogger(__name__)


# ── Data Classes ──


@dataclass
class GeneratorConfig:
    """Configuration for a generation run.

    Attributes:
        run_dir: Directory the harness changes to when run by Bazel.
        output: Output file; empty writes to standard output.
        coverage: Emit coverage registration.
        imports: ``alias=importpath`` values.
        sources: ``alias=filepath`` values.
        build_context: Platform and tags for source filtering; defaults
            to the environment and host.
    """

    run_dir: str = "."
    output: str = ""
    coverage: bool = False
    imports: list[str] = field(default_factory=list)
    sources: list[str] = field(default_factory=list)
    build_context: Optional[BuildContext] = None


@dataclass
class GenerationResult:
    """Outcome of a successful generation run.

    Attributes:
        cases: The finalized aggregate that was rendered.
        source: The generated Go program.
        files_analyzed: Source files parsed after filtering.
        files_excluded: Source files dropped by build constraints.
        output_path: File written, or None for standard output.
    """

    cases: Cases
    source: str
    files_analyzed: int = 0
    files_excluded: list[str] = field(default_factory=list)
    output_path: Optional[Path] = None


# ── Stages ──


def collect_cases(config: GeneratorConfig) -> tuple[Cases, int, list[str]]:
    """Run the collect and analyze stages.

    Returns the finalized cases, the number of files analyzed and the
    files excluded by build constraints.
    """
    import_table = parse_imports(config.imports)
    sources = parse_sources(config.sources)

    ctx = config.build_context or BuildContext.from_environ()
    aliases = {src.path: src.alias for src in sources}
    paths = list(dict.fromkeys(src.path for src in sources))
    selected = filter_files(ctx, paths)
    chosen = set(selected)
    excluded = [p for p in paths if p not in chosen]

    builder = CaseBuilder(import_table, run_dir=config.run_dir, coverage=config.coverage)
    for path in selected:
        analysis = analyze_file(path, aliases[path])
        logger.debug(
            "%s: package %s as %s: %d tests, %d benchmarks, %d examples",
            path, analysis.package_name, analysis.package_ref,
            len(analysis.tests), len(analysis.benchmarks), len(analysis.examples),
        )
        builder.add(analysis)

    return builder.finalize(), len(selected), excluded


def generate(config: GeneratorConfig) -> GenerationResult:
    """Generate the test main described by ``config`` and write it."""
    cases, analyzed, excluded = collect_cases(config)
    source = render(cases)
    output_path = write_output(source, config.output)
    return GenerationResult(
        cases=cases,
        source=source,
        files_analyzed=analyzed,
        files_excluded=excluded,
        output_path=output_path,
    )
