#!/usr/bin/env python3
import argparse
import sys
from pathlib import Path

import matplotlib


def _select_backend() -> str:
    candidates = [
        ("TkAgg", "tkinter"),
        ("QtAgg", "PyQt6"),
        ("Qt5Agg", "PyQt5"),
        ("MacOSX", None),
    ]
    for backend, module in candidates:
        try:
            if module:
                __import__(module)
            matplotlib.use(backend)
            return backend
        except Exception:
            continue
    raise RuntimeError(
        "No interactive matplotlib backend available. Install tkinter (python3-tk), "
        "PyQt6, or PyQt5 to use the map viewer."
    )


_select_backend()

import matplotlib.pyplot as plt

BASE_DIR = Path(__file__).resolve().parent
if str(BASE_DIR.parent) not in sys.path:
    sys.path.insert(0, str(BASE_DIR.parent))

from provmap.config import MapConfig
from provmap.maplog import MapLog
from provmap.session import MapSession

MPL_BUTTONS = {1: "left", 2: "middle", 3: "right"}
FRAME_INTERVAL_MS = 16


def main() -> None:
    parser = argparse.ArgumentParser(description="Interactive political map viewer")
    parser.add_argument("config", help="Path to the map config JSON")
    parser.add_argument("--editor", action="store_true", help="Start in province painting mode")
    parser.add_argument("--paint", default=None, help="Country id to paint with (editor mode)")
    args = parser.parse_args()

    config = MapConfig.load(args.config)
    run_log = MapLog(run_label="map_viewer")

    def on_select(country_id):
        name = session.countries[country_id].name if country_id in session.countries else None
        run_log.log(f"Selected country: {country_id} ({name})")
        status.set_text(f"{country_id or '-'}  {name or ''}")

    session = MapSession.load(config, log_fn=run_log.log, on_select=on_select)
    session.set_editor_mode(args.editor)
    if args.paint:
        session.editor.set_paint_country(args.paint)

    dpi = 100
    fig = plt.figure(figsize=(config.viewport_width / dpi, config.viewport_height / dpi), dpi=dpi)
    ax = fig.add_axes([0, 0, 1, 1])
    ax.axis("off")
    frame = session.render()
    image_artist = ax.imshow(frame.data, interpolation="nearest")
    status = ax.text(8, 16, "", fontsize=9, color="#f0f0f0", zorder=5)
    pointer = session.pointer

    def _redraw() -> None:
        if session.tick():
            data = session.frame.data
            image_artist.set_data(data)
            h, w = data.shape[:2]
            image_artist.set_extent((-0.5, w - 0.5, h - 0.5, -0.5))
            fig.canvas.draw_idle()

    def on_press(event):
        if event.inaxes != ax or event.xdata is None:
            return
        button = MPL_BUTTONS.get(int(event.button))
        if button is not None:
            pointer.press(event.xdata, event.ydata, button)

    def on_release(event):
        button = MPL_BUTTONS.get(int(event.button))
        if button is None or event.xdata is None:
            pointer.leave()
            return
        pointer.release(event.xdata, event.ydata, button)
        _redraw()

    def on_motion(event):
        if event.inaxes != ax or event.xdata is None:
            return
        pointer.move(event.xdata, event.ydata)

    def on_scroll(event):
        if event.inaxes != ax or event.xdata is None:
            return
        # matplotlib reports wheel-up as "up"; the controller expects a DOM-like delta
        pointer.wheel(event.xdata, event.ydata, -1.0 if event.button == "up" else 1.0)

    def on_key(event):
        if event.key == "escape":
            session.deselect()
        elif event.key == "r":
            session.reset_camera()
        elif event.key == "e":
            session.set_editor_mode(not session.editor_mode)
            run_log.log(f"Editor mode: {session.editor_mode}")
        elif event.key == "s" and session.editor_mode:
            out = Path("ownership_export.json")
            out.write_text(session.editor.export_ownership(), encoding="utf-8")
            run_log.log(f"Exported ownership to {out}")

    def on_resize(event):
        session.resize(int(event.width), int(event.height))

    fig.canvas.mpl_connect("button_press_event", on_press)
    fig.canvas.mpl_connect("button_release_event", on_release)
    fig.canvas.mpl_connect("motion_notify_event", on_motion)
    fig.canvas.mpl_connect("scroll_event", on_scroll)
    fig.canvas.mpl_connect("axes_leave_event", lambda _event: pointer.leave())
    fig.canvas.mpl_connect("key_press_event", on_key)
    fig.canvas.mpl_connect("resize_event", on_resize)

    timer = fig.canvas.new_timer(interval=FRAME_INTERVAL_MS)
    timer.add_callback(_redraw)
    timer.start()

    try:
        plt.show()
    finally:
        run_log.close()


if __name__ == "__main__":
    main()
