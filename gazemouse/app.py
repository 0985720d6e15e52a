"""
Gaze Mouse - webcam gaze cursor with blink / mouth-open click
Uses MediaPipe Face Mesh for landmarks; the cursor is a marker on the
preview window, optionally driving the system mouse through PyAutoGUI
"""

import sys
import time
from typing import Optional, Tuple

import numpy as np

# Handle imports with proper error messaging
try:
    import cv2
    import pyautogui as pag
except ImportError as e:
    print(f"❌ FATAL ERROR: Missing Required Library")
    print(f"Details: {e}")
    print("\nPlease install required libraries:")
    print("pip install opencv-python mediapipe pyautogui")
    sys.exit(1)

from .config import Config
from .gaze import GazeFeed
from .landmarks import FaceMeshSource, InferenceSlot, LandmarkSet, first_face
from .session import GazeSession, TickResult


CURSOR_COLOR = (0, 255, 0)
FLASH_COLOR = (0, 0, 255)
LANDMARK_COLOR = (0, 255, 0)
EYELID_COLOR = (0, 255, 255)
TEXT_COLOR = (255, 255, 255)

MAX_EMPTY_FRAMES = 100


class GazeMouse:
    """Main controller: camera loop, session ticks and activation output"""

    def __init__(self, config: Optional[Config] = None):
        self.config = (config or Config.load()).validate()

        if self.config.drive_system_mouse:
            pag.FAILSAFE = True
            pag.PAUSE = 0.001
            self.viewport: Tuple[int, int] = tuple(pag.size())
        else:
            self.viewport = (self.config.cam_width, self.config.cam_height)

        self.session = GazeSession(self.config, self.viewport)
        self.feed: Optional[GazeFeed] = None

        self.flash_until = 0.0
        self.reported_baselines = set()
        self.fps = 0
        self.frame_count = 0
        self.fps_start_time = time.time()

        print("✓ Gaze mouse initialized")
        print(f"✓ Viewport: {self.viewport[0]}x{self.viewport[1]}")
        print(f"✓ Gestures: {', '.join(self.session.gestures) or 'none'}")
        print(f"✓ Mirror: {'ON' if self.config.mirror else 'OFF'}")

    def activate(self, result: TickResult, now: float):
        """Flash the marker, ring the bell and click if driving the mouse"""
        self.flash_until = now + self.config.flash_ms / 1000.0
        print("\a", end="", flush=True)
        for gesture in result.activations:
            print(f"✅ {gesture} click")
        if self.config.drive_system_mouse:
            pag.click()

    def report_calibration(self):
        """Print each baseline once when it freezes"""
        for name, classifier in self.session.gestures.items():
            if classifier.calibrator.ready and name not in self.reported_baselines:
                self.reported_baselines.add(name)
                print(f"👁  {name} baseline: {classifier.baseline:.3f}")

    def process(self, landmarks: Optional[LandmarkSet], now: float, fresh: bool = True) -> TickResult:
        """Run one tick and its side effects"""
        result = self.session.tick(landmarks, now, fresh=fresh)
        self.report_calibration()

        if result.activated:
            self.activate(result, now)

        if self.config.drive_system_mouse and result.source is not None:
            x, y = result.cursor
            pag.moveTo(x, y, duration=0, _pause=False)

        return result

    def draw_landmarks(self, frame, landmarks: LandmarkSet):
        """Draw landmark dots and eyelid lines on the unflipped frame"""
        for x, y in landmarks.points:
            if not (np.isnan(x) or np.isnan(y)):
                cv2.circle(frame, (int(x), int(y)), 1, LANDMARK_COLOR, -1)

        cfg = self.config
        for top, bottom in ((cfg.left_eyelid_top[0], cfg.left_eyelid_bottom[0]),
                            (cfg.right_eyelid_top[0], cfg.right_eyelid_bottom[0])):
            upper, lower = landmarks.get(top), landmarks.get(bottom)
            if upper is not None and lower is not None:
                cv2.line(frame, (int(upper[0]), int(upper[1])),
                         (int(lower[0]), int(lower[1])), EYELID_COLOR, 1)

    def draw_overlay(self, frame, result: TickResult, now: float):
        """Draw the cursor marker and status text on the display frame"""
        h, w = frame.shape[:2]
        vw, vh = self.viewport

        # Cursor lives in viewport space, the preview may be smaller
        cx = int(result.cursor[0] * w / vw)
        cy = int(result.cursor[1] * h / vh)
        color = FLASH_COLOR if now < self.flash_until else CURSOR_COLOR
        cv2.circle(frame, (cx, cy), 12, color, -1)
        cv2.circle(frame, (cx, cy), 12, TEXT_COLOR, 1)

        if not self.config.show_stats:
            return

        y_offset = 30
        if not result.face_found:
            cv2.putText(frame, "NO FACE DETECTED", (10, y_offset),
                       cv2.FONT_HERSHEY_SIMPLEX, 0.7, FLASH_COLOR, 2)
            y_offset += 30

        for name, classifier in self.session.gestures.items():
            state = classifier.calibrator.state
            if state.ready:
                text = f"{name.upper()}: ACTIVE"
            else:
                text = f"{name.upper()}: CALIBRATING {state.collected}/{state.required}"
            cv2.putText(frame, text, (10, y_offset),
                       cv2.FONT_HERSHEY_SIMPLEX, 0.6, (255, 255, 0), 2)
            y_offset += 25

        cv2.putText(frame, f"SOURCE: {result.source or 'held'}", (10, y_offset),
                   cv2.FONT_HERSHEY_SIMPLEX, 0.5, TEXT_COLOR, 1)
        y_offset += 20
        cv2.putText(frame, f"FPS: {self.fps:.1f}", (10, y_offset),
                   cv2.FONT_HERSHEY_SIMPLEX, 0.5, TEXT_COLOR, 1)
        y_offset += 20

        if self.config.show_debug_values:
            for name, signal in result.signals.items():
                classification = result.classifications.get(name)
                threshold = classification.threshold if classification else None
                signal_text = f"{signal:.2f}" if signal is not None else "--"
                threshold_text = f"{threshold:.2f}" if threshold is not None else "--"
                cv2.putText(frame, f"{name}: {signal_text} | Thresh: {threshold_text}",
                           (10, y_offset), cv2.FONT_HERSHEY_SIMPLEX, 0.5, FLASH_COLOR, 1)
                y_offset += 20

        cv2.putText(frame, "ESC: Exit | R: Recalibrate | D: Debug | M: Landmarks | C: Save",
                   (10, h - 15), cv2.FONT_HERSHEY_SIMPLEX, 0.4, (200, 200, 200), 1)

    def update_fps(self):
        self.frame_count += 1
        if self.frame_count % 10 == 0:
            elapsed = time.time() - self.fps_start_time
            self.fps = self.frame_count / elapsed
            if elapsed > 2.0:
                self.frame_count = 0
                self.fps_start_time = time.time()

    def handle_key(self, key: int) -> bool:
        """Apply a keyboard shortcut; returns False to exit"""
        if key == 27:  # ESC
            print("\n👋 Exiting...")
            return False
        elif key == ord('r') or key == ord('R'):
            self.session.recalibrate()
            self.reported_baselines.clear()
            print("↺ Recalibrating - keep a relaxed face and look at the center")
        elif key == ord('d') or key == ord('D'):
            self.config.show_debug_values = not self.config.show_debug_values
            print(f"Debug values: {'ON' if self.config.show_debug_values else 'OFF'}")
        elif key == ord('m') or key == ord('M'):
            self.config.show_landmarks = not self.config.show_landmarks
            print(f"Landmarks: {'ON' if self.config.show_landmarks else 'OFF'}")
        elif key == ord('c') or key == ord('C'):
            self.config.save()
            print("✓ Configuration saved to mouse_config.json")
        return True

    def run(self):
        """Main application loop"""
        source = FaceMeshSource()
        cap = cv2.VideoCapture(self.config.camera_index)
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.config.cam_width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.config.cam_height)

        if not cap.isOpened():
            print("❌ Error: Could not open camera")
            source.close()
            return

        print("\n" + "="*70)
        print("GAZE MOUSE")
        print("="*70)
        print("👀 Look at the center with a relaxed face while calibrating")
        if 'blink' in self.session.gestures:
            print("👁️  Blink both eyes:     Click")
        if 'mouth' in self.session.gestures:
            print("👄 Open mouth:          Click")
        print("="*70 + "\n")

        slot = None
        if self.config.async_inference:
            slot = InferenceSlot(source.estimate, self.config.inference_timeout_ms / 1000.0)

        if self.config.use_external_gaze and self.config.gaze_feed_port is not None:
            self.feed = GazeFeed(self.session.external, self.config.gaze_feed_host,
                                 self.config.gaze_feed_port)
            self.feed.start()

        empty_frames = 0
        try:
            while True:
                success, frame = cap.read()

                if not success or frame is None:
                    empty_frames += 1
                    if empty_frames >= MAX_EMPTY_FRAMES:
                        print("❌ Error: Camera stopped delivering frames")
                        break
                    print("⚠️  Warning: Empty camera frame")
                    continue
                empty_frames = 0

                try:
                    # The model sees the unflipped frame; GazeMapper mirrors once
                    fresh = True
                    if slot is not None:
                        slot.submit(frame)
                        faces, fresh = slot.poll()
                    else:
                        faces = source.estimate(frame)
                    landmarks = first_face(faces)

                    now = time.monotonic()
                    result = self.process(landmarks, now, fresh)

                    if landmarks is not None and self.config.show_landmarks:
                        self.draw_landmarks(frame, landmarks)
                    display = cv2.flip(frame, 1) if self.config.mirror else frame
                    self.draw_overlay(display, result, now)
                except cv2.error as e:
                    print(f"⚠️  Warning: OpenCV error on a single frame: {e}. Skipping.")
                    continue

                self.update_fps()
                cv2.imshow('Gaze Mouse', display)

                key = cv2.waitKey(1) & 0xFF
                if not self.handle_key(key):
                    break

        except KeyboardInterrupt:
            print("\n⚠️  Interrupted by user")
        except pag.FailSafeException:
            print("\n🛑 PyAutoGUI failsafe triggered (mouse in corner)")
        finally:
            if self.feed is not None:
                self.feed.stop()
            if slot is not None:
                slot.close()
            source.close()
            cap.release()
            cv2.destroyAllWindows()
            print("✓ Cleanup complete")
