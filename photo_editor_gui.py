#!/usr/bin/env python3
"""
Photo editor GUI: crop and auto-correct a candidate portrait
Drag the crop square or its corner handles, toggle auto-fix, save as JPEG
"""

import tkinter as tk
from tkinter import filedialog, messagebox
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
import sys
import argparse
import logging
import traceback

from PIL import Image, ImageTk

from crop_engine import CORNER_HANDLES, Handle, scale_factor
from diagnostics import log_file_name, log_opencv_diagnostics, setup_error_logging
from editor_session import EditorSession, LoadError, open_session

# Import version info
try:
    from version import __version__
except ImportError:
    __version__ = "dev"


@dataclass
class EditorConfig:
    """Editor appearance and defaults"""
    border_color: str = "#FFFFFF"
    handle_color: str = "#0F766E"
    handle_radius: int = 9        # Screen pixels
    show_grid: bool = True        # Rule-of-thirds guides inside the crop
    output_directory: Path = Path("./output")


# ============================================================================
# Crop Canvas
# ============================================================================

class CropCanvas(tk.Canvas):
    """
    Displays the session image scaled to fit, with the crop overlay.
    Translates mouse gestures into crop controller calls.
    """
    def __init__(self, parent, app):
        super().__init__(parent, bg="#0F172A", highlightthickness=0)
        self.app = app
        self.session: Optional[EditorSession] = None
        self.fit_factor = 1.0       # Displayed size / image size
        self.image_offset = (0, 0)
        self.image_scale = 1.0      # Image size / displayed size, queried by the controller
        self.photo_image = None  # Keep reference to prevent GC

        self.bind("<Configure>", self.on_resize)
        self.bind("<Button-1>", self.on_mouse_down)
        self.bind("<B1-Motion>", self.on_mouse_drag)
        self.bind("<ButtonRelease-1>", self.on_mouse_up)
        self.bind("<Motion>", self.on_mouse_move)

    def set_session(self, session: Optional[EditorSession]):
        self.session = session
        self.refresh()

    def display_scale(self) -> float:
        """Image pixels per screen pixel"""
        return self.image_scale

    def on_resize(self, event):
        """Handle canvas resize"""
        if self.session:
            self.refresh()

    def calculate_scale_and_offset(self):
        """Calculate fit factor and offset to show the image centered in the canvas"""
        canvas_w = self.winfo_width()
        canvas_h = self.winfo_height()

        if canvas_w <= 1 or canvas_h <= 1:
            return  # Canvas not yet sized

        img_w, img_h = self.session.working.size

        # Fit to canvas, never upscale
        self.fit_factor = min(canvas_w / img_w, canvas_h / img_h, 1.0)

        scaled_w = img_w * self.fit_factor
        scaled_h = img_h * self.fit_factor
        self.image_offset = (
            (canvas_w - scaled_w) // 2,
            (canvas_h - scaled_h) // 2
        )
        self.image_scale = scale_factor(img_w, int(scaled_w), self.image_scale)

    def image_to_canvas(self, img_x, img_y):
        """Convert image coordinates to canvas coordinates"""
        canvas_x = img_x * self.fit_factor + self.image_offset[0]
        canvas_y = img_y * self.fit_factor + self.image_offset[1]
        return (canvas_x, canvas_y)

    def canvas_to_image(self, canvas_x, canvas_y):
        """Convert canvas coordinates to image coordinates"""
        img_x = (canvas_x - self.image_offset[0]) / self.fit_factor
        img_y = (canvas_y - self.image_offset[1]) / self.fit_factor
        return (img_x, img_y)

    def display_image(self):
        """Draw the (possibly corrected / filtered) image scaled to fit"""
        self.calculate_scale_and_offset()

        shown = self.session.display_raster.to_image()
        img_w, img_h = shown.size
        scaled_w = int(img_w * self.fit_factor)
        scaled_h = int(img_h * self.fit_factor)

        if scaled_w > 0 and scaled_h > 0:
            if (scaled_w, scaled_h) != shown.size:
                shown = shown.resize((scaled_w, scaled_h), Image.Resampling.LANCZOS)
            self.photo_image = ImageTk.PhotoImage(shown)
            self.create_image(
                self.image_offset[0], self.image_offset[1],
                anchor=tk.NW, image=self.photo_image
            )

    def refresh(self):
        """Redraw entire canvas (image + overlay)"""
        self.delete("all")
        if not self.session:
            return
        self.display_image()
        self.draw_overlay()

    def draw_overlay(self):
        """Dim outside the crop, then border, grid and corner handles"""
        self.delete("overlay")
        config = self.app.config_prefs
        region = self.session.region

        img_x1, img_y1 = self.image_to_canvas(0, 0)
        img_x2, img_y2 = self.image_to_canvas(*self.session.working.size)
        x1, y1 = self.image_to_canvas(region.x, region.y)
        x2, y2 = self.image_to_canvas(region.right, region.bottom)

        # Dim mask: four bands around the crop
        for band in ((img_x1, img_y1, img_x2, y1),
                     (img_x1, y2, img_x2, img_y2),
                     (img_x1, y1, x1, y2),
                     (x2, y1, img_x2, y2)):
            self.create_rectangle(*band, fill="black", stipple="gray50",
                                  width=0, tags="overlay")

        self.create_rectangle(x1, y1, x2, y2, outline=config.border_color,
                              width=2, tags="overlay")

        if config.show_grid:
            for i in (1, 2):
                gx = x1 + (x2 - x1) * i / 3
                gy = y1 + (y2 - y1) * i / 3
                self.create_line(gx, y1, gx, y2, fill=config.border_color,
                                 dash=(2, 4), tags="overlay")
                self.create_line(x1, gy, x2, gy, fill=config.border_color,
                                 dash=(2, 4), tags="overlay")

        r = config.handle_radius
        for hx, hy in self.corner_positions().values():
            self.create_oval(hx - r, hy - r, hx + r, hy + r,
                             fill=config.handle_color, outline=config.border_color,
                             width=2, tags="overlay")

    def corner_positions(self):
        """Canvas position of each corner handle"""
        region = self.session.region
        x1, y1 = self.image_to_canvas(region.x, region.y)
        x2, y2 = self.image_to_canvas(region.right, region.bottom)
        return {
            Handle.NW: (x1, y1),
            Handle.NE: (x2, y1),
            Handle.SE: (x2, y2),
            Handle.SW: (x1, y2),
        }

    def get_handle_at_point(self, canvas_x, canvas_y) -> Optional[Handle]:
        """Corner handle under the point, MOVE inside the crop, else None"""
        tolerance = self.app.config_prefs.handle_radius + 3
        positions = self.corner_positions()
        for handle in CORNER_HANDLES:
            hx, hy = positions[handle]
            if abs(canvas_x - hx) <= tolerance and abs(canvas_y - hy) <= tolerance:
                return handle

        img_x, img_y = self.canvas_to_image(canvas_x, canvas_y)
        if self.session.region.contains_point(img_x, img_y):
            return Handle.MOVE
        return None

    def on_mouse_down(self, event):
        """Start a move or resize gesture"""
        if not self.session:
            return
        handle = self.get_handle_at_point(event.x, event.y)
        if handle is not None:
            self.session.crop.begin_drag(handle, event.x, event.y)
        return "break"

    def on_mouse_drag(self, event):
        """Handle mouse drag"""
        if not self.session or not self.session.crop.is_dragging:
            return
        self.session.crop.drag_to(event.x, event.y)
        self.draw_overlay()
        # Keep the gesture from scrolling/panning anything underneath
        return "break"

    def on_mouse_up(self, event):
        """Handle mouse release"""
        if not self.session:
            return
        was_dragging = self.session.crop.is_dragging
        self.session.crop.end_drag()
        if was_dragging:
            self.app.update_status()

    def on_mouse_move(self, event):
        """Handle mouse move (update cursor)"""
        if not self.session or self.session.crop.is_dragging:
            return  # Don't change cursor during drag
        self.update_cursor(self.get_handle_at_point(event.x, event.y))

    def update_cursor(self, handle):
        """Update cursor based on handle under the pointer"""
        cursors = {
            Handle.MOVE: "fleur",
            Handle.NW: "size_nw_se",
            Handle.NE: "size_ne_sw",
            Handle.SE: "size_nw_se",
            Handle.SW: "size_ne_sw",
        }
        self.config(cursor=cursors.get(handle, ""))


# ============================================================================
# Main Application
# ============================================================================

class PhotoEditorApp(tk.Tk):
    """
    Editor window: toolbar, crop canvas and status bar.
    """
    def __init__(self, initial_image_path: Optional[Path] = None):
        super().__init__()

        self.title("Photo Editor")
        self.geometry("1000x800")

        self.config_prefs = EditorConfig()
        self.session: Optional[EditorSession] = None
        self.image_path: Optional[Path] = None

        self.setup_toolbar()

        self.canvas = CropCanvas(self, self)
        self.canvas.pack(fill=tk.BOTH, expand=True)

        self.status_bar = tk.Label(self, text="Ready", bd=1, relief=tk.SUNKEN,
                                   anchor=tk.W, padx=5)
        self.status_bar.pack(side=tk.BOTTOM, fill=tk.X)

        self.update_toolbar_state()

        if initial_image_path:
            # Schedule image loading after main window is rendered
            self.after(100, lambda: self.load_image(initial_image_path))
        else:
            self.show_welcome()

    def setup_toolbar(self):
        """Create toolbar with action buttons"""
        self.toolbar = tk.Frame(self, relief=tk.RAISED, borderwidth=2)
        self.toolbar.pack(side=tk.TOP, fill=tk.X)

        self.open_btn = tk.Button(self.toolbar, text="Open Image...", command=self.open_image)
        self.open_btn.pack(side=tk.LEFT, padx=2, pady=2)

        tk.Frame(self.toolbar, width=2, bg="gray", relief=tk.SUNKEN).pack(
            side=tk.LEFT, fill=tk.Y, padx=5, pady=2
        )

        self.auto_fix_btn = tk.Button(self.toolbar, text="Auto-fix", command=self.toggle_auto_fix)
        self.auto_fix_btn.pack(side=tk.LEFT, padx=2, pady=2)

        self.preview_btn = tk.Button(self.toolbar, text="Enhance Preview", command=self.toggle_preview)
        self.preview_btn.pack(side=tk.LEFT, padx=2, pady=2)

        self.grid_btn = tk.Button(self.toolbar, text="Grid", command=self.toggle_grid,
                                  relief=tk.SUNKEN)
        self.grid_btn.pack(side=tk.LEFT, padx=2, pady=2)

        self.reset_btn = tk.Button(self.toolbar, text="Reset", command=self.reset_session)
        self.reset_btn.pack(side=tk.LEFT, padx=2, pady=2)

        tk.Frame(self.toolbar, width=2, bg="gray", relief=tk.SUNKEN).pack(
            side=tk.LEFT, fill=tk.Y, padx=5, pady=2
        )

        self.cancel_btn = tk.Button(self.toolbar, text="Cancel", command=self.cancel_session)
        self.cancel_btn.pack(side=tk.LEFT, padx=2, pady=2)

        self.save_btn = tk.Button(self.toolbar, text="Save Photo...", command=self.save_photo)
        self.save_btn.pack(side=tk.LEFT, padx=2, pady=2)

    def update_toolbar_state(self):
        """Enable/disable and press/release toolbar buttons for the current session"""
        state = tk.NORMAL if self.session else tk.DISABLED
        for btn in (self.auto_fix_btn, self.preview_btn, self.grid_btn,
                    self.reset_btn, self.cancel_btn, self.save_btn):
            btn.config(state=state)

        if self.session:
            self.auto_fix_btn.config(relief=tk.SUNKEN if self.session.auto_corrected else tk.RAISED)
            self.preview_btn.config(relief=tk.SUNKEN if self.session.preview_filter else tk.RAISED)

    def update_status(self):
        """Show crop geometry in the status bar"""
        if not self.session:
            return
        region = self.session.region
        self.status_bar.config(
            text=f"Crop {region.width}x{region.height} at ({region.x}, {region.y})"
        )

    def open_image(self):
        """Open image file dialog and load image"""
        file_path = filedialog.askopenfilename(
            title="Select photo",
            filetypes=[
                ("Image files", "*.jpg *.jpeg *.png *.webp"),
                ("JPEG files", "*.jpg *.jpeg"),
                ("PNG files", "*.png"),
                ("WebP files", "*.webp"),
                ("All files", "*.*")
            ]
        )

        if file_path:
            self.load_image(Path(file_path))

    def load_image(self, path: Path):
        """Open a new editing session on the image file"""
        logger = logging.getLogger(__name__)
        logger.info(f"Loading image: {path}")
        try:
            data = path.read_bytes()
            session = open_session(data, self.canvas.display_scale)
        except (OSError, LoadError) as e:
            # Previous session (if any) stays usable
            logger.error(f"Error loading image {path}: {e}")
            logger.error(traceback.format_exc())
            messagebox.showerror("Error Loading Image", str(e))
            return

        if self.session:
            self.session.cancel()
        self.session = session
        self.image_path = path

        self.canvas.set_session(session)
        self.update_toolbar_state()
        width, height = session.pristine.size
        self.status_bar.config(text=f"Loaded {path.name} ({width}x{height}). Drag the square to frame the face.")

    def toggle_auto_fix(self):
        """Apply or remove auto brightness/contrast correction"""
        if not self.session:
            return
        self.session.toggle_auto_correction()
        self.canvas.refresh()
        self.update_toolbar_state()

    def toggle_preview(self):
        """Show or hide the non-destructive enhancement preview"""
        if not self.session:
            return
        self.session.toggle_preview_filter()
        self.canvas.refresh()
        self.update_toolbar_state()
        if self.session.preview_filter:
            self.status_bar.config(text=f"Preview filter: {self.session.preview_filter.css()}")

    def toggle_grid(self):
        """Toggle rule-of-thirds guides"""
        self.config_prefs.show_grid = not self.config_prefs.show_grid
        self.grid_btn.config(relief=tk.SUNKEN if self.config_prefs.show_grid else tk.RAISED)
        if self.session:
            self.canvas.draw_overlay()

    def reset_session(self):
        """Restore the initial crop and original pixels"""
        if not self.session:
            return
        self.session.reset()
        self.canvas.refresh()
        self.update_toolbar_state()
        self.update_status()

    def cancel_session(self):
        """Discard the current session without saving"""
        if not self.session:
            return
        self.session.cancel()
        self.end_session("Editing cancelled")

    def save_photo(self):
        """Confirm the crop and write it as JPEG"""
        if not self.session:
            return

        base_name = self.image_path.stem if self.image_path else "photo"
        output_file = self.ask_output_file(f"{base_name}_cropped.jpg")
        if not output_file:
            return  # User cancelled

        data = self.session.confirm()

        # The session is closed now, keep asking until the bytes land somewhere
        while True:
            try:
                Path(output_file).write_bytes(data)
                break
            except OSError as e:
                logging.getLogger(__name__).error(f"Could not write {output_file}: {e}")
                messagebox.showerror("Save Error", f"Failed to save photo: {e}\n\nChoose another location.")

            retry_file = self.ask_output_file(Path(output_file).name)
            if retry_file:
                output_file = retry_file
            elif messagebox.askyesno("Discard Photo", "Discard the cropped photo without saving?"):
                self.end_session("Save failed, photo discarded")
                return

        self.config_prefs.output_directory = Path(output_file).parent
        self.end_session(f"Saved photo to {Path(output_file).name}")

    def ask_output_file(self, initial_file):
        return filedialog.asksaveasfilename(
            title="Save Photo As",
            initialdir=self.config_prefs.output_directory,
            initialfile=initial_file,
            defaultextension=".jpg",
            filetypes=[("JPEG files", "*.jpg"), ("All files", "*.*")]
        )

    def end_session(self, message):
        self.session = None
        self.canvas.set_session(None)
        self.update_toolbar_state()
        self.status_bar.config(text=message)
        self.show_welcome()

    def show_welcome(self):
        """Show welcome message on empty canvas"""
        self.canvas.create_text(
            400, 300,
            text="Photo Editor\n\nUse Open Image... to load a portrait",
            font=("Arial", 16),
            fill="white"
        )


# ============================================================================
# Main Entry Point
# ============================================================================

def main():
    """Main entry point with command-line argument support"""
    logger = setup_error_logging("photo-editor")

    parser = argparse.ArgumentParser(
        description="Photo Editor - crop and auto-correct a portrait photo"
    )
    parser.add_argument(
        "image",
        nargs="?",
        type=str,
        help="Path to image file to open automatically (optional)"
    )
    parser.add_argument(
        "--output",
        default="./output",
        help="Default directory for saved photos (default: ./output)"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging with imaging diagnostics"
    )

    args = parser.parse_args()

    try:
        if args.debug:
            logging.getLogger().setLevel(logging.DEBUG)
            log_opencv_diagnostics(logger)

        logger.info(f"Starting photo editor v{__version__}")

        initial_image = None
        if args.image:
            initial_image = Path(args.image)
            logger.info(f"Command-line image argument: {args.image}")

            if not initial_image.is_file():
                logger.error(f"Image file not found: {args.image}")
                print(f"Error: Image file not found: {args.image}", file=sys.stderr)
                sys.exit(1)

        app = PhotoEditorApp(initial_image_path=initial_image)
        app.config_prefs.output_directory = Path(args.output)
        logger.info("Application initialized successfully")
        app.mainloop()
        logger.info("Application closed normally")

    except Exception as e:
        logger.error("=" * 60)
        logger.error("FATAL ERROR OCCURRED")
        logger.error("=" * 60)
        logger.error(f"Error: {str(e)}")
        logger.error(f"Error Type: {type(e).__name__}")
        logger.error("Stack Trace:")
        logger.error(traceback.format_exc())

        logger.error("Logging diagnostics due to fatal error:")
        try:
            log_opencv_diagnostics(logger)
        except Exception as diag_error:
            logger.error(f"Could not log diagnostics: {diag_error}")

        try:
            messagebox.showerror(
                "Fatal Error",
                f"An unexpected error occurred:\n\n{str(e)}\n\n"
                f"Error details have been logged to {log_file_name()}"
            )
        except tk.TclError:
            print(f"\nFATAL ERROR: {str(e)}", file=sys.stderr)
            print("Error details have been logged. Please check the log file.", file=sys.stderr)

        sys.exit(1)


if __name__ == "__main__":
    main()
