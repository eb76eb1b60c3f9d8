"""
Batched submission of many independent instructions.

Large operations (rotating the roots of many distributors, say) produce
more instructions than one request can carry. BatchSubmitter splits them
into chunks of at most `max_instructions_per_request`, and sends the
chunks strictly one after another: each must confirm before the next is
built.

A failure stops the run. Chunks already confirmed stay confirmed; the
BatchSubmissionError says how many, so the caller can resume from the
first unconfirmed chunk.
"""

from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from mdp.core.distributor.instructions import Instruction
from mdp.core.errors import BatchSubmissionError, InvalidInput, MDPError
from mdp.core.ledger.client import LedgerClient, send_and_confirm
from mdp.core.transaction import MAX_INSTRUCTIONS
from mdp.utils.logger import get_logger

logger = get_logger("batch")


DEFAULT_MAX_INSTRUCTIONS_PER_REQUEST = 8


@dataclass
class BatchResult:
    signatures: List[str] = field(default_factory=list)
    batch_count: int = 0
    instruction_count: int = 0


def _check_batch_size(size: int):
    if not 1 <= size <= MAX_INSTRUCTIONS:
        raise InvalidInput(
            f"max_instructions_per_request must be between 1 and {MAX_INSTRUCTIONS}, got {size}",
            field="max_instructions_per_request",
        )


def chunk_instructions(instructions: Sequence[Instruction], size: int) -> List[List[Instruction]]:
    """Split into consecutive chunks of at most `size`, preserving order."""
    _check_batch_size(size)
    return [list(instructions[i:i + size]) for i in range(0, len(instructions), size)]


class BatchSubmitter:
    """Sequential chunked sender."""

    def __init__(
        self,
        ledger: LedgerClient,
        max_instructions_per_request: int = DEFAULT_MAX_INSTRUCTIONS_PER_REQUEST,
        confirm_timeout: Optional[float] = None,
        simulate: bool = True,
    ):
        _check_batch_size(max_instructions_per_request)
        self.ledger = ledger
        self.max_instructions_per_request = max_instructions_per_request
        self.confirm_timeout = confirm_timeout
        self.simulate = simulate

    def chunk(self, instructions: Sequence[Instruction]) -> List[List[Instruction]]:
        return chunk_instructions(instructions, self.max_instructions_per_request)

    async def submit(
        self,
        signer,
        instructions: Sequence[Instruction],
        on_batch: Optional[Callable[[int, int, str], None]] = None,
    ) -> BatchResult:
        """
        Send all instructions.

        Args:
            signer: Wallet signing every chunk
            instructions: Instructions in submission order
            on_batch: Called as on_batch(completed, total, signature) after
                each confirmed chunk

        Returns:
            BatchResult with one signature per chunk

        Raises:
            BatchSubmissionError: a chunk was rejected or timed out
        """
        chunks = self.chunk(instructions)
        result = BatchResult(instruction_count=len(instructions))
        if not chunks:
            return result

        total = len(chunks)
        logger.info(f"Submitting {len(instructions)} instructions in {total} batches")

        for position, chunk in enumerate(chunks):
            try:
                signature = await send_and_confirm(
                    self.ledger,
                    signer,
                    chunk,
                    confirm_timeout=self.confirm_timeout,
                    simulate=self.simulate,
                )
            except MDPError as e:
                logger.error(f"Batch {position + 1}/{total} failed: {e}")
                raise BatchSubmissionError(
                    completed_batches=position,
                    total_batches=total,
                    signatures=result.signatures,
                    cause=e,
                ) from e

            result.signatures.append(signature)
            result.batch_count += 1
            logger.info(f"Batch {position + 1}/{total} confirmed ({len(chunk)} instructions)")
            if on_batch is not None:
                on_batch(position + 1, total, signature)

        return result
