"""Execution of scripts made of blocks separated by ``GO`` lines."""

import logging
from typing import List

from sqlbridge.db.streaming import ResultStreamer
from sqlbridge.exceptions import ScriptExecutionError

logger = logging.getLogger(__name__)

BATCH_SEPARATOR = "GO"


def split_script(script: str) -> List[str]:
    """Split ``script`` into blocks on lines holding only ``GO`` (any case).

    Lines inside a block keep their original order and are rejoined with
    ``\\n``. Blocks holding only blank lines are dropped.
    """
    blocks: List[str] = []
    current: List[str] = []
    for line in script.splitlines():
        if line.strip().upper() == BATCH_SEPARATOR:
            block = '\n'.join(current)
            if block.strip():
                blocks.append(block)
            current = []
            continue
        current.append(line)

    tail = '\n'.join(current)
    if tail.strip():
        blocks.append(tail)
    return blocks


class ScriptRunner:
    """Runs script blocks one after another as non-query commands."""

    def __init__(self, streamer: ResultStreamer) -> None:
        self.streamer = streamer

    async def run(self, script: str) -> None:
        """Execute every block in order, stopping at the first failure.

        Raises:
            ScriptExecutionError: If a block fails; later blocks are not run.
        """
        blocks = split_script(script)
        logger.info("Running script of %d block(s)", len(blocks))
        for index, block in enumerate(blocks):
            try:
                await self.streamer.update_batch(block)
            except Exception as e:
                raise ScriptExecutionError(
                    f"Script execution failed at block {index + 1}: {e}",
                    block_index=index,
                ) from e
