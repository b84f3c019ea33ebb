"""
Convert a trace file to CSV.

The reader thread decodes records into a bounded pipeline; the writer
thread renders each one and appends it to the CSV output. The header is
written before any row and the output is flushed before the writer exits.
"""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .bounded import BoundedPipeline, run_pipeline
from ..config.schema import PipelineConfig
from ..formats.reader import TraceReader
from ..formats.record import SampleRecord
from ..formats.writer import open_output
from ..render.csv import header_for, render_row

logger = logging.getLogger(__name__)


@dataclass
class ConversionResult:
    """Outcome of a conversion."""
    input: Path
    output: Path
    records_written: int = 0
    duration_seconds: float = 0.0

    def to_dict(self) -> dict:
        return {
            'input': str(self.input),
            'output': str(self.output),
            'records_written': self.records_written,
            'duration_seconds': round(self.duration_seconds, 3),
        }


class CsvExporter:
    """
    Export one trace file as CSV.

    Example:
        result = CsvExporter(Path('lab.gss'), Path('lab.csv'), pipsqueak=True).run()
    """

    def __init__(
        self,
        input_path: Path,
        output_path: Path,
        overwrite: bool = False,
        pipsqueak: bool = False,
        config: Optional[PipelineConfig] = None,
    ):
        self.input_path = Path(input_path)
        self.output_path = Path(output_path)
        self.overwrite = overwrite
        self.pipsqueak = pipsqueak
        self.config = config or PipelineConfig()
        self.records_written = 0

    def run(self) -> ConversionResult:
        """
        Perform the conversion.

        Raises:
            InputUnavailable: Input cannot be read
            OutputExists / OutputUnavailable: Output cannot be created
        """
        start = time.monotonic()
        trace_file = TraceReader.open(self.input_path, read_buffer=self.config.read_buffer_bytes)
        logger.info(f"Input file: {self.input_path}")
        logger.info(f"Output file: {self.output_path}")

        output = open_output(self.output_path, overwrite=self.overwrite, binary=False)
        with output:
            output.write(header_for(self.pipsqueak))

            def write_row(record: SampleRecord) -> None:
                output.write(render_row(record, pipsqueak=self.pipsqueak))
                self.records_written += 1

            pipeline = BoundedPipeline(
                capacity=self.config.capacity,
                poll_timeout=self.config.poll_timeout_seconds,
            )
            run_pipeline(
                TraceReader.read(trace_file),
                write_row,
                on_finish=output.flush,
                report_every=self.config.report_every,
                pipeline=pipeline,
            )

        logger.info(f"Wrote {self.records_written} records.")
        return ConversionResult(
            input=self.input_path,
            output=self.output_path,
            records_written=self.records_written,
            duration_seconds=time.monotonic() - start,
        )
