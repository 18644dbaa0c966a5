"""Rasterise views into square PNG key images with matplotlib's Agg canvas.

No pyplot: every call builds its own Figure, so rendering has no global state
and the same view always produces the same bytes.
"""

from __future__ import annotations

import io

import numpy as np
from matplotlib.backends.backend_agg import FigureCanvasAgg
from matplotlib.colors import to_rgb
from matplotlib.figure import Figure
from matplotlib.patches import Polygon, Rectangle

from binance_dock.services.render.views import DOWN_COLOR, UP_COLOR, DepthView, TickerView, View

DPI = 100
BASE_SIZE_PX = 144
BACKGROUND_RGB = (0.08, 0.09, 0.11)
TEXT_COLOR = "#FFFFFF"
MUTED_COLOR = "#A0A4AB"
CHART_HEIGHT = 0.42  # bottom share of the key used by the sparkline
LOADING_TEXT = "Loading..."


def _figure(size_px: int, bg_opacity: int) -> Figure:
    fig = Figure(figsize=(size_px / DPI, size_px / DPI), dpi=DPI)
    FigureCanvasAgg(fig)
    fig.patch.set_facecolor((*BACKGROUND_RGB, bg_opacity / 100.0))
    return fig


def _to_png(fig: Figure) -> bytes:
    buf = io.BytesIO()
    fig.savefig(
        buf,
        format="png",
        dpi=DPI,
        facecolor=fig.get_facecolor(),
        edgecolor="none",
        metadata={"Software": None},
    )
    return buf.getvalue()


def _gradient_fill(ax, xs: np.ndarray, ys: np.ndarray, color: str, floor: float) -> None:
    r, g, b = to_rgb(color)
    rgba = np.zeros((64, 1, 4))
    rgba[:, :, 0], rgba[:, :, 1], rgba[:, :, 2] = r, g, b
    rgba[:, 0, 3] = np.linspace(0.45, 0.0, 64)

    image = ax.imshow(
        rgba,
        aspect="auto",
        extent=(float(xs[0]), float(xs[-1]), floor, float(ys.max())),
        origin="upper",
        interpolation="bilinear",
        zorder=1,
    )
    outline = np.vstack([[xs[0], floor], np.column_stack([xs, ys]), [xs[-1], floor]])
    clip = Polygon(outline, closed=True, facecolor="none", edgecolor="none")
    ax.add_patch(clip)
    image.set_clip_path(clip)


def _draw_ticker(fig: Figure, view: TickerView, scale: float) -> None:
    if view.points:
        ax = fig.add_axes((0.0, 0.02, 1.0, CHART_HEIGHT))
        ax.set_axis_off()
        ax.patch.set_alpha(0.0)
        xs = np.array([p[0] for p in view.points])
        ys = np.array([p[1] for p in view.points])
        floor = -0.05
        _gradient_fill(ax, xs, ys, view.color, floor)
        ax.plot(xs, ys, color=view.color, linewidth=1.6 * scale, solid_capstyle="round", zorder=2)
        ax.set_xlim(0.0, 1.0)
        ax.set_ylim(floor, 1.08)

    fig.text(0.5, 0.88, view.label, ha="center", va="center", color=TEXT_COLOR,
             fontsize=12 * scale, fontweight="bold")
    fig.text(0.5, 0.69, view.price_text, ha="center", va="center", color=TEXT_COLOR,
             fontsize=14 * scale, fontweight="bold")
    fig.text(0.5, 0.52, f"{view.glyph} {view.change_text}", ha="center", va="center",
             color=view.color, fontsize=10 * scale)


def _draw_depth(fig: Figure, view: DepthView, scale: float) -> None:
    fig.text(0.5, 0.86, view.label, ha="center", va="center", color=TEXT_COLOR,
             fontsize=12 * scale, fontweight="bold")

    if view.loading:
        fig.text(0.5, 0.5, LOADING_TEXT, ha="center", va="center", color=MUTED_COLOR, fontsize=10 * scale)
        return

    ax = fig.add_axes((0.08, 0.55, 0.84, 0.17))
    ax.set_axis_off()
    ax.set_xlim(0.0, 1.0)
    ax.set_ylim(0.0, 1.0)
    ax.add_patch(Rectangle((0.0, 0.0), view.bid_ratio, 1.0, facecolor=UP_COLOR, edgecolor="none"))
    ax.add_patch(Rectangle((view.bid_ratio, 0.0), 1.0 - view.bid_ratio, 1.0, facecolor=DOWN_COLOR, edgecolor="none"))
    if view.bid_label:
        ax.text(view.bid_ratio / 2, 0.5, view.bid_label, ha="center", va="center",
                color=TEXT_COLOR, fontsize=8 * scale, fontweight="bold")
    if view.ask_label:
        ax.text(view.bid_ratio + (1.0 - view.bid_ratio) / 2, 0.5, view.ask_label, ha="center", va="center",
                color=TEXT_COLOR, fontsize=8 * scale, fontweight="bold")

    fig.text(0.5, 0.36, view.best_bid_text, ha="center", va="center", color=UP_COLOR, fontsize=10 * scale)
    fig.text(0.5, 0.18, view.best_ask_text, ha="center", va="center", color=DOWN_COLOR, fontsize=10 * scale)


def render_view(view: View, size_px: int = BASE_SIZE_PX) -> bytes:
    """PNG bytes for a ticker or depth view."""
    scale = size_px / BASE_SIZE_PX
    fig = _figure(size_px, view.bg_opacity)
    if isinstance(view, TickerView):
        _draw_ticker(fig, view, scale)
    elif isinstance(view, DepthView):
        _draw_depth(fig, view, scale)
    else:
        raise TypeError(f"Unsupported view: {type(view).__name__}")
    return _to_png(fig)
