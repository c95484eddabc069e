"""Manual point picking: an explicit click-collection context plus a matplotlib front end."""

from __future__ import annotations

from typing import Callable, Iterable

import cv2
import matplotlib.pyplot as plt
from matplotlib.patches import Circle
import numpy as np

from .errors import AcquisitionCancelled, InputError

PointCallback = Callable[[int, float, float], None]


class ClickCollector:
    """Acquisition context for one manual picking call.

    Points are accepted strictly in arrival order until ``count`` have been
    collected; later clicks are ignored. Each accepted point is passed to
    ``on_point(index, x, y)`` so a front end can echo a marker.
    """

    def __init__(self, count: int, on_point: PointCallback | None = None):
        if count < 1:
            raise InputError(f"Number of points to collect must be positive, got {count}")
        self.count = count
        self.on_point = on_point
        self._points: list[tuple[float, float]] = []
        self._cancelled = False

    @property
    def points(self) -> list[tuple[float, float]]:
        return list(self._points)

    @property
    def complete(self) -> bool:
        return len(self._points) >= self.count

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def add(self, x: float, y: float) -> bool:
        if self._cancelled or self.complete:
            return False
        self._points.append((float(x), float(y)))
        if self.on_point is not None:
            self.on_point(len(self._points) - 1, float(x), float(y))
        return True

    def undo(self) -> None:
        if self._points and not self._cancelled:
            self._points.pop()

    def cancel(self) -> None:
        self._cancelled = True
        self._points.clear()

    def result(self) -> np.ndarray:
        if self._cancelled or not self.complete:
            raise AcquisitionCancelled(
                f"Manual acquisition stopped with {len(self._points)} of {self.count} points"
            )
        return np.asarray(self._points, dtype=np.float64)


def collect_clicks(
    events: Iterable[tuple[float, float]],
    count: int,
    on_point: PointCallback | None = None,
) -> np.ndarray:
    """Consume ``(x, y)`` click events until ``count`` points are collected.

    Running out of events first counts as cancellation.
    """

    collector = ClickCollector(count, on_point)
    for x, y in events:
        collector.add(x, y)
        if collector.complete:
            break
    else:
        collector.cancel()
    return collector.result()


def draw_marker(image: np.ndarray, point: tuple[float, float], index: int | None = None) -> None:
    """Draw a red circle (and optional index) on a BGR image in place."""
    center = (int(round(point[0])), int(round(point[1])))
    cv2.circle(image, center, 5, (0, 0, 255), 3)
    if index is not None:
        cv2.putText(image, str(index), (center[0] + 6, center[1] - 6), cv2.FONT_HERSHEY_SIMPLEX, 0.5, (255, 255, 255), 1)


def _as_rgb(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return image
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2RGB)
    return cv2.cvtColor(image, cv2.COLOR_BGR2RGB)


def show_image(image: np.ndarray, title: str = "") -> None:
    """Display an image and block until the window is closed."""
    figure, axes = plt.subplots(figsize=(8, 8))
    axes.imshow(_as_rgb(image), cmap="gray")
    axes.set_title(title)
    axes.set_axis_off()
    plt.show(block=True)
    plt.close(figure)


class ManualPointPicker:
    """Lightweight matplotlib-based point picker.

    Left click adds a point, Backspace/Delete undoes the last one, Q or
    Escape cancels. The window closes by itself once every point is placed;
    closing it earlier cancels the acquisition.
    """

    def __init__(self, display_scale: float = 1.0):
        self.display_scale = display_scale

    def pick(self, image: np.ndarray, count: int, title: str = "Click image points") -> np.ndarray:
        display = _as_rgb(image)
        if abs(self.display_scale - 1.0) > 1e-3:
            h, w = display.shape[:2]
            display = cv2.resize(
                display,
                (int(w * self.display_scale), int(h * self.display_scale)),
                interpolation=cv2.INTER_CUBIC,
            )

        plt.ioff()
        figure, axes = plt.subplots(figsize=(8, 8))

        def refresh() -> None:
            axes.clear()
            axes.imshow(display, cmap="gray")
            axes.set_title(
                f"{title}: {len(collector.points)}/{count}"
                "  (Left click: add, Delete: undo, Q: cancel)"
            )
            for idx, (x, y) in enumerate(collector.points, start=1):
                axes.add_patch(Circle((x, y), 4, color="red", fill=False, linewidth=2))
                axes.text(x + 5, y - 5, str(idx), color="white", fontsize=8)
            axes.set_xlim(0, display.shape[1])
            axes.set_ylim(display.shape[0], 0)
            figure.canvas.draw_idle()

        def on_point(index: int, x: float, y: float) -> None:
            print(f"count={index + 1}, clicked=({x / self.display_scale:.1f}, {y / self.display_scale:.1f})")
            refresh()
            if collector.complete:
                plt.close(figure)

        collector = ClickCollector(count, on_point)

        def on_click(event) -> None:
            if event.inaxes != axes or event.button != 1 or event.xdata is None:
                return
            collector.add(event.xdata, event.ydata)

        def on_key(event) -> None:
            if event.key in {"escape", "q"}:
                collector.cancel()
                plt.close(figure)
            elif event.key in {"backspace", "delete"}:
                collector.undo()
                refresh()

        figure.canvas.mpl_connect("button_press_event", on_click)
        figure.canvas.mpl_connect("key_press_event", on_key)
        refresh()
        plt.show(block=True)
        plt.close(figure)

        points = collector.result()
        if abs(self.display_scale - 1.0) > 1e-3:
            points /= self.display_scale
        return points
