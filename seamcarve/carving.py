"""
High-level carving functions that orchestrate the seam batch workflow.

A batch computes the energy once, extracts several seams from one shared
cost table (erasing each chosen seam before the next extraction) and then
commits all of them to a new buffer in a single rewrite. Horizontal
requests are run as vertical ones on the transposed buffer.
"""

import logging
from dataclasses import replace
from typing import Callable, List, Optional, Sequence, Tuple

import torch

from .backend import ComputeBackend, get_backend
from .buffer import CHANNELS, PixelBuffer, check_axis, require_buffer, transpose
from .config import CarvingConfig
from .energy import energy_buffer
from .errors import InvalidDimension, MalformedSeam, MissingInput
from .seam import (build_cost_table, erase_seam, extract_seam, seam_available,
                   validate_seam)

logger = logging.getLogger(__name__)

StopCallback = Callable[[], bool]
BatchCallback = Callable[[PixelBuffer, List[torch.Tensor]], None]


def _span(buffer: PixelBuffer, axis: str) -> int:
    return buffer.width if axis == 'vertical' else buffer.height


def _check_request(buffer: PixelBuffer, seam_count: int, axis: str, insert: bool):
    require_buffer(buffer)
    check_axis(axis)
    if seam_count < 0:
        raise InvalidDimension(f"Seam count must be >= 0, got {seam_count}",
                               width=buffer.width, height=buffer.height)
    span = _span(buffer, axis)
    if not insert and seam_count >= span:
        raise InvalidDimension(
            f"Cannot remove {seam_count} {axis} seams from a "
            f"{buffer.width}x{buffer.height} buffer",
            width=buffer.width, height=buffer.height)


def _extract_vertical(buffer: PixelBuffer, seam_count: int,
                      backend: ComputeBackend) -> List[torch.Tensor]:
    energy = backend.compute_energy(buffer)
    table = build_cost_table(energy, 'vertical')
    working = energy.as_grid().to('cpu', torch.float32).clone()

    seams = []
    while len(seams) < seam_count and seam_available(table):
        seam = extract_seam(table)
        seams.append(seam)
        erase_seam(table, working, seam)

    if len(seams) < seam_count:
        logger.debug("Batch ended after %d/%d seams: no connected seam left",
                     len(seams), seam_count)
    return seams


def extract_batch(buffer: PixelBuffer, seam_count: int, axis: str = 'vertical',
                  config: Optional[CarvingConfig] = None,
                  backend: Optional[ComputeBackend] = None) -> List[torch.Tensor]:
    """
    Extract `seam_count` seams that share no pixel, all against one energy map.

    Seams after the first are chosen on the cost landscape of the original
    buffer, not of a buffer with the earlier seams already applied. Fewer
    seams are returned when the pixels left over no longer hold a connected
    seam.

    Args:
        buffer: Source pixels
        seam_count: Number of seams (at most the span of the carved axis)
        axis: 'vertical' or 'horizontal'
        config: Pipeline settings
        backend: Backend for the energy stage (default: from config)

    Returns:
        Seams in extraction order, in the coordinates of `buffer`
    """
    require_buffer(buffer)
    check_axis(axis)
    backend = backend or get_backend(config)
    span = _span(buffer, axis)
    if seam_count < 0 or seam_count > span:
        raise InvalidDimension(
            f"Cannot extract {seam_count} {axis} seams from a "
            f"{buffer.width}x{buffer.height} buffer",
            width=buffer.width, height=buffer.height)

    if axis == 'horizontal':
        return _extract_vertical(transpose(buffer), seam_count, backend)
    return _extract_vertical(buffer, seam_count, backend)


def _carve_batch(buffer: PixelBuffer, seam_count: int, axis: str, insert: bool,
                 config: CarvingConfig,
                 backend: ComputeBackend) -> Tuple[PixelBuffer, List[torch.Tensor]]:
    if seam_count > config.large_batch_threshold:
        logger.debug("Processing large batch: %d seams, %dx%d",
                     seam_count, buffer.width, buffer.height)

    source = transpose(buffer) if axis == 'horizontal' else buffer
    seams = _extract_vertical(source, seam_count, backend)
    carved = backend.apply_seams(source, seams, insert=insert)
    if axis == 'horizontal':
        carved = transpose(carved)
    return carved, seams


def apply_batch(buffer: PixelBuffer, seam_count: int, axis: str = 'vertical',
                insert: bool = False, config: Optional[CarvingConfig] = None,
                backend: Optional[ComputeBackend] = None) -> PixelBuffer:
    """
    Remove or insert `seam_count` seams with one energy map and one rewrite.

    If the pixels left over stop holding a connected seam before
    `seam_count` is reached, the rest is carved by a follow-up batch on
    fresh energy.

    Args:
        buffer: Source pixels (left untouched)
        seam_count: Number of seams in the batch
        axis: 'vertical' (changes width) or 'horizontal' (changes height)
        insert: Grow the image instead of shrinking it
        config: Pipeline settings
        backend: Compute backend (default: from config)

    Returns:
        Carved buffer

    Raises:
        InvalidDimension: the result would have a zero dimension, or an
            insertion asks for more seams than the carved span holds
    """
    _check_request(buffer, seam_count, axis, insert)
    if seam_count == 0:
        return buffer
    if seam_count > _span(buffer, axis):
        raise InvalidDimension(
            f"A single batch holds at most {_span(buffer, axis)} {axis} seams, "
            f"got {seam_count}",
            width=buffer.width, height=buffer.height)

    config = replace(config or CarvingConfig(), sub_batch_size=seam_count)
    return carve_seams(buffer, seam_count, axis=axis, insert=insert,
                       config=config, backend=backend)


def carve_seams(buffer: PixelBuffer, seam_count: int, axis: str = 'vertical',
                insert: bool = False, config: Optional[CarvingConfig] = None,
                backend: Optional[ComputeBackend] = None,
                should_stop: Optional[StopCallback] = None,
                on_batch: Optional[BatchCallback] = None) -> PixelBuffer:
    """
    Carve any number of seams as a sequence of batches.

    Each batch holds at most `config.sub_batch_size` seams (and never more
    than the current span allows) and recomputes the energy, which bounds
    the quality loss of extracting many seams from one stale cost table.

    Args:
        buffer: Source pixels
        seam_count: Total number of seams
        axis: 'vertical' or 'horizontal'
        insert: Grow the image instead of shrinking it
        config: Pipeline settings
        backend: Compute backend (default: from config)
        should_stop: Polled between batches; returning True stops early
        on_batch: Called with (buffer, seams) after each committed batch

    Returns:
        The carved buffer, or the last committed one if stopped early

    Raises:
        InvalidDimension: the request does not fit the buffer, or a fresh
            energy map holds no finite seam at all
    """
    _check_request(buffer, seam_count, axis, insert)
    config = config or CarvingConfig()
    backend = backend or get_backend(config)

    current = buffer
    done = 0
    while done < seam_count:
        if should_stop is not None and should_stop():
            logger.warning("Stopped after %d/%d %s seams", done, seam_count, axis)
            break

        span = _span(current, axis)
        limit = span if insert else span - 1
        size = min(config.sub_batch_size, seam_count - done, limit)

        current, seams = _carve_batch(current, size, axis, insert, config, backend)
        if not seams:
            raise InvalidDimension(
                f"No {axis} seam found on fresh energy after {done}/{seam_count} seams",
                width=current.width, height=current.height)
        done += len(seams)
        logger.debug("%s %s seams %d/%d, now %dx%d",
                     'Inserted' if insert else 'Removed', axis, done, seam_count,
                     current.width, current.height)
        if on_batch is not None:
            on_batch(current, seams)

    return current


def highlight_seams(buffer: PixelBuffer, seams: Sequence[torch.Tensor],
                    axis: str = 'vertical',
                    color: Sequence[float] = (1.0, 0.0, 0.0, 1.0),
                    clip: bool = False) -> PixelBuffer:
    """
    Copy of `buffer` with every seam pixel painted in `color`.

    With `clip`, coordinates beyond the buffer are skipped instead of
    raising MalformedSeam.
    """
    require_buffer(buffer)
    check_axis(axis)
    n_lines, span = ((buffer.height, buffer.width) if axis == 'vertical'
                     else (buffer.width, buffer.height))
    image = buffer.image().clone()
    paint = torch.tensor(color, dtype=image.dtype)

    for seam in seams:
        if clip:
            seam = torch.as_tensor(seam, dtype=torch.long).flatten()
            if seam.numel() != n_lines:
                raise MalformedSeam(
                    f"Seam has {seam.numel()} entries, expected {n_lines}",
                    width=buffer.width, height=buffer.height)
        else:
            seam = validate_seam(seam, buffer.width, buffer.height, axis)
        lines = torch.arange(n_lines)
        inside = (seam >= 0) & (seam < span)
        if axis == 'vertical':
            image[lines[inside], seam[inside]] = paint
        else:
            image[seam[inside], lines[inside]] = paint

    return PixelBuffer(buffer.width, buffer.height,
                       image.view(buffer.width * buffer.height, CHANNELS))


def carve_image(buffer: PixelBuffer, target_width: int, target_height: int,
                config: Optional[CarvingConfig] = None) -> PixelBuffer:
    """One-shot resize of `buffer` to target_width x target_height."""
    return SeamCarver(buffer, config).resize_to(target_width, target_height)


class SeamCarver:
    """
    Resize requests against one source image.

    Keeps the pristine source, the current result and the seams of the most
    recent batch. Every committed batch replaces the current result, so a
    failure or a stop request leaves a complete image from the last batch.

    Args:
        source: Image to resize
        config: Pipeline settings
    """

    def __init__(self, source: PixelBuffer, config: Optional[CarvingConfig] = None):
        if source is None:
            raise MissingInput("No source buffer supplied")
        self.config = config or CarvingConfig()
        self.backend = get_backend(self.config)
        self.original = source
        self.current = source
        self.last_seams: List[torch.Tensor] = []
        self.last_axis = 'vertical'

    def _commit(self, buffer: PixelBuffer, seams: List[torch.Tensor], axis: str):
        self.current = buffer
        self.last_seams = seams
        self.last_axis = axis

    def _carve(self, buffer: PixelBuffer, seam_count: int, axis: str,
               insert: bool, should_stop: Optional[StopCallback]) -> PixelBuffer:
        return carve_seams(
            buffer, seam_count, axis=axis, insert=insert,
            config=self.config, backend=self.backend, should_stop=should_stop,
            on_batch=lambda carved, seams: self._commit(carved, seams, axis))

    def resize_to(self, target_width: int, target_height: int,
                  should_stop: Optional[StopCallback] = None) -> PixelBuffer:
        """
        Resize the original image to target_width x target_height.

        Always starts from the original rather than the current result, and
        changes the width before the height.
        """
        if target_width < 1 or target_height < 1:
            raise InvalidDimension(
                f"Target size must be positive, got {target_width}x{target_height}",
                width=target_width, height=target_height)

        logger.info("Starting resize from %dx%d to %dx%d",
                    self.original.width, self.original.height,
                    target_width, target_height)
        self._commit(self.original, [], 'vertical')

        dw = target_width - self.original.width
        if dw:
            self._carve(self.current, abs(dw), 'vertical', dw > 0, should_stop)

        dh = target_height - self.current.height
        if dh and self.current.width == target_width:
            self._carve(self.current, abs(dh), 'horizontal', dh > 0, should_stop)

        logger.info("Finished resize. Final dimensions: %dx%d",
                    self.current.width, self.current.height)
        return self.current

    def resize_by_seams(self, count: int, axis: str = 'vertical', insert: bool = False,
                        should_stop: Optional[StopCallback] = None) -> PixelBuffer:
        """Remove or insert `count` seams on the current result."""
        self._carve(self.current, count, axis, insert, should_stop)
        return self.current

    def reset(self) -> PixelBuffer:
        """Drop all changes and return to the original image."""
        self._commit(self.original, [], 'vertical')
        return self.current

    def overlay(self, color: Optional[Sequence[float]] = None) -> PixelBuffer:
        """
        Current result with the most recent batch of seams highlighted.

        After a removal some seam coordinates no longer exist in the result;
        those pixels are left out of the overlay.
        """
        color = color if color is not None else self.config.highlight_color
        return highlight_seams(self.current, self.last_seams, self.last_axis,
                               color, clip=True)

    def energy_view(self) -> PixelBuffer:
        """Grayscale energy map of the current result."""
        return energy_buffer(self.backend.compute_energy(self.current))
