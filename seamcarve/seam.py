"""
Seam computation and application.

The seam search is dynamic programming over a cumulative cost table:
1. build_cost_table: accumulate energy along the scan axis
2. extract_seam: backtrack the cheapest path from the last line
3. erase_seam: take a chosen seam out of the table so a batch of seams
   never shares a pixel

Seams are long tensors with one coordinate per scanline: for 'vertical'
seams a column index per row, for 'horizontal' seams a row index per column.
"""

from dataclasses import dataclass
from typing import Sequence, Tuple

import torch

from .buffer import CHANNELS, PixelBuffer, check_axis, require_buffer, transpose
from .energy import EnergyMap
from .errors import InvalidDimension, MalformedSeam

INF = float('inf')


@dataclass(frozen=True, eq=False)
class CumulativeCostTable:
    """
    Dynamic programming table for one energy map.

    `cost` and `direction` are flat row-major tensors of width * height
    entries. `direction` holds the predecessor offset (-1, 0 or +1) along
    the scanline: for vertical tables the column step from the row above,
    for horizontal tables the row step from the column to the left.
    """

    width: int
    height: int
    axis: str
    cost: torch.Tensor
    direction: torch.Tensor

    def cost_grid(self) -> torch.Tensor:
        """(H, W) view of the cumulative cost."""
        return self.cost.view(self.height, self.width)

    def direction_grid(self) -> torch.Tensor:
        return self.direction.view(self.height, self.width)

    def scan_views(self) -> Tuple[torch.Tensor, torch.Tensor]:
        """(cost, direction) viewed as (n_lines, span), one scanline per row."""
        if self.axis == 'vertical':
            return self.cost_grid(), self.direction_grid()
        return self.cost_grid().t(), self.direction_grid().t()


def _relax(prev: torch.Tensor, energy_row: torch.Tensor,
           lo: int, hi: int) -> Tuple[torch.Tensor, torch.Tensor]:
    """
    Cost and direction for positions lo..hi of one scanline.

    Neighbours are tried center, left, right; a later one only wins on a
    strictly smaller cost.
    """
    inf = torch.full((1,), INF, dtype=prev.dtype, device=prev.device)
    padded = torch.cat([inf, prev, inf])
    left = padded[lo:hi + 1]
    center = padded[lo + 1:hi + 2]
    right = padded[lo + 2:hi + 3]

    best = center
    step = torch.zeros(hi - lo + 1, dtype=torch.int8, device=prev.device)

    take_left = left < best
    best = torch.where(take_left, left, best)
    step[take_left] = -1

    take_right = right < best
    best = torch.where(take_right, right, best)
    step[take_right] = 1

    return energy_row[lo:hi + 1] + best, step


def _accumulate(energy: torch.Tensor) -> Tuple[torch.Tensor, torch.Tensor]:
    """Run the top-to-bottom recurrence over an (n_lines, span) grid."""
    n_lines, span = energy.shape
    cost = torch.empty_like(energy)
    direction = torch.zeros((n_lines, span), dtype=torch.int8)
    if n_lines == 0 or span == 0:
        return cost, direction

    cost[0] = energy[0]
    for i in range(1, n_lines):
        cost[i], direction[i] = _relax(cost[i - 1], energy[i], 0, span - 1)
    return cost, direction


def build_cost_table(energy: EnergyMap, axis: str = 'vertical') -> CumulativeCostTable:
    """
    Build the cumulative cost table for an energy map.

    Vertical: row 0 equals the energy, and for y > 0
        M(x, y) = E(x, y) + min(M(x-1, y-1), M(x, y-1), M(x+1, y-1))
    with out-of-range neighbours excluded. Horizontal is the same scan
    over columns.

    Args:
        energy: Energy map
        axis: 'vertical' or 'horizontal'

    Returns:
        CumulativeCostTable on the host
    """
    check_axis(axis)
    grid = energy.as_grid().detach().to('cpu', torch.float32)

    if axis == 'vertical':
        cost, direction = _accumulate(grid)
    else:
        cost, direction = _accumulate(grid.t())
        cost, direction = cost.t(), direction.t()

    return CumulativeCostTable(energy.width, energy.height, axis,
                               cost.contiguous().view(-1),
                               direction.contiguous().view(-1))


def seam_available(table: CumulativeCostTable) -> bool:
    """Whether another seam can be extracted from the table."""
    if table.width == 0 or table.height == 0:
        return False
    cost, _ = table.scan_views()
    return bool(torch.isfinite(cost[-1]).any())


def extract_seam(table: CumulativeCostTable) -> torch.Tensor:
    """
    Find the minimum-cost seam in a cumulative cost table.

    The cheapest cell of the last scanline is chosen (lowest index on ties)
    and the stored directions are followed back to the first scanline.

    Returns:
        Seam indices - for vertical: (H,) with column index per row
                      for horizontal: (W,) with row index per column

    Raises:
        InvalidDimension: the table has no rows/columns, or every seam has
            already been erased from it
    """
    if table.width == 0 or table.height == 0:
        raise InvalidDimension(
            f"Cannot extract a seam from a {table.width}x{table.height} table",
            width=table.width, height=table.height)

    cost, direction = table.scan_views()
    n_lines = cost.shape[0]

    end = int(torch.argmin(cost[-1]))
    if not torch.isfinite(cost[-1, end]):
        raise InvalidDimension(
            "No seam left: every position of the last line is already taken",
            width=table.width, height=table.height)

    seam = torch.empty(n_lines, dtype=torch.long)
    seam[-1] = end
    pos = end
    for i in range(n_lines - 1, 0, -1):
        pos += int(direction[i, pos])
        seam[i - 1] = pos
    return seam


def erase_seam(table: CumulativeCostTable, energy: torch.Tensor,
               seam: torch.Tensor) -> None:
    """
    Remove a seam's cells from further consideration.

    The seam's cells get +inf energy and +inf cost, and the cells below them
    whose cost depends on them are recomputed. Only a dirty interval of each
    scanline is revisited: it grows by one cell per line and shrinks back to
    the cells that actually changed. Afterwards the table equals a fresh
    build over the erased energy.

    Args:
        table: Table to update in place (owned by the running batch)
        energy: (H, W) working energy grid the table was built from,
            updated in place
        seam: Seam previously extracted from the table
    """
    cost, direction = table.scan_views()
    grid = energy if table.axis == 'vertical' else energy.t()
    n_lines, span = cost.shape
    positions = seam.tolist()

    first = positions[0]
    grid[0, first] = INF
    cost[0, first] = INF
    lo = hi = first

    for i in range(1, n_lines):
        s = positions[i]
        grid[i, s] = INF
        lo = max(0, min(lo - 1, s))
        hi = min(span - 1, max(hi + 1, s))

        new_cost, new_step = _relax(cost[i - 1], grid[i], lo, hi)
        old_cost = cost[i, lo:hi + 1]
        changed = torch.nonzero(new_cost != old_cost).flatten()
        cost[i, lo:hi + 1] = new_cost
        direction[i, lo:hi + 1] = new_step

        if changed.numel() == 0:
            lo, hi = span, -1
        else:
            lo, hi = lo + int(changed[0]), lo + int(changed[-1])


def validate_seam(seam: torch.Tensor, width: int, height: int,
                  axis: str = 'vertical') -> torch.Tensor:
    """
    Check that a seam fits a width x height buffer.

    Raises:
        MalformedSeam: wrong length, coordinate out of range, or a step of
            more than one between neighbouring scanlines
    """
    check_axis(axis)
    n_lines, span = (height, width) if axis == 'vertical' else (width, height)
    seam = torch.as_tensor(seam, dtype=torch.long).flatten().cpu()

    if seam.numel() != n_lines:
        raise MalformedSeam(
            f"{axis.capitalize()} seam has {seam.numel()} entries, expected {n_lines}",
            width=width, height=height)
    if seam.min() < 0 or seam.max() >= span:
        raise MalformedSeam(
            f"Seam coordinate out of range [0, {span - 1}]: "
            f"min={int(seam.min())}, max={int(seam.max())}",
            width=width, height=height)
    if n_lines > 1 and (seam[1:] - seam[:-1]).abs().max() > 1:
        raise MalformedSeam("Seam steps by more than one pixel between lines",
                            width=width, height=height)
    return seam


def seam_columns(buffer: PixelBuffer, seams: Sequence[torch.Tensor]) -> torch.Tensor:
    """
    Validate vertical seams and stack them as a sorted (H, k) index array.

    Raises:
        MalformedSeam: a seam is invalid, or two seams share a pixel
    """
    checked = [validate_seam(s, buffer.width, buffer.height) for s in seams]
    columns, _ = torch.stack(checked, dim=1).sort(dim=1)
    if columns.shape[1] > 1 and (columns[:, 1:] == columns[:, :-1]).any():
        raise MalformedSeam("Two seams of one batch share a pixel",
                            width=buffer.width, height=buffer.height)
    return columns


def resulting_span(span: int, n_seams: int, insert: bool,
                   width: int, height: int) -> int:
    """Size of the carved dimension after applying n_seams."""
    new_span = span + n_seams if insert else span - n_seams
    if new_span < 1:
        raise InvalidDimension(
            f"Removing {n_seams} seams from a dimension of {span} would leave {new_span}",
            width=width, height=height)
    return new_span


def _apply_vertical(buffer: PixelBuffer, seams: Sequence[torch.Tensor],
                    insert: bool) -> PixelBuffer:
    W, H = buffer.width, buffer.height
    new_w = resulting_span(W, len(seams), insert, W, H)
    columns = seam_columns(buffer, seams).tolist()
    image = buffer.image()

    carved = torch.empty(H, new_w, CHANNELS, dtype=image.dtype)
    for i in range(H):
        row = image[i]
        pieces = []
        start = 0
        for col in columns[i]:
            if insert:
                pieces.append(row[start:col + 1])
                right = row[col + 1] if col + 1 < W else row[col]
                pieces.append(((row[col] + right) * 0.5).unsqueeze(0))
            else:
                pieces.append(row[start:col])
            start = col + 1
        pieces.append(row[start:])
        carved[i] = torch.cat(pieces)

    return PixelBuffer(new_w, H, carved.view(new_w * H, CHANNELS))


def apply_seams(buffer: PixelBuffer, seams: Sequence[torch.Tensor],
                insert: bool = False, axis: str = 'vertical') -> PixelBuffer:
    """
    Remove or insert a batch of seams in a single rewrite.

    All seams are in the coordinates of `buffer`. Removal drops the seam
    pixel from each line. Insertion keeps every pixel and adds, right after
    each seam pixel, the average of that pixel and its next neighbour (the
    pixel itself on the last column/row).

    Args:
        buffer: Source pixels (left untouched)
        seams: Seams that do not share any pixel
        insert: Insert instead of remove
        axis: 'vertical' or 'horizontal'

    Returns:
        New buffer, narrower/wider (vertical) or shorter/taller (horizontal)
        by len(seams)
    """
    require_buffer(buffer)
    check_axis(axis)
    if len(seams) == 0:
        return buffer

    if axis == 'horizontal':
        return transpose(_apply_vertical(transpose(buffer), seams, insert))
    return _apply_vertical(buffer, seams, insert)


def remove_seam(buffer: PixelBuffer, seam: torch.Tensor,
                axis: str = 'vertical') -> PixelBuffer:
    """
    Remove a seam from a buffer.

    Returns:
        Carved buffer with one column (vertical) or row (horizontal) fewer
    """
    return apply_seams(buffer, [seam], insert=False, axis=axis)


def insert_seam(buffer: PixelBuffer, seam: torch.Tensor,
                axis: str = 'vertical') -> PixelBuffer:
    """
    Insert a blended seam next to `seam`.

    Returns:
        Buffer with one column (vertical) or row (horizontal) more
    """
    return apply_seams(buffer, [seam], insert=True, axis=axis)


def seam_energy(energy: EnergyMap, seam: torch.Tensor, axis: str = 'vertical') -> float:
    """Total energy along a seam."""
    grid = energy.as_grid()
    lines = torch.arange(seam.numel())
    if axis == 'vertical':
        return float(grid[lines, seam].sum())
    return float(grid[seam, lines].sum())