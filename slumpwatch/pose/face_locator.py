from __future__ import annotations

from typing import Optional, Sequence

import cv2
import mediapipe as mp
import numpy as np

from slumpwatch.common.schemas import FaceObservation
from slumpwatch.common.utils import clamp01
from slumpwatch.config import MIN_FACE_CONFIDENCE

# mediapipe face detection keypoint order: right eye, left eye, nose tip, mouth, right ear, left ear
_NOSE_TIP = 2


def observation_from_face(
    bbox_xywh: Sequence[float], keypoints_xy: Optional[Sequence[Sequence[float]]] = None
) -> FaceObservation:
    """Convert a relative face box (top-left origin, y down) to an upright-positive observation.

    Uses the nose tip keypoint when present, otherwise the box center.
    """
    x, y, w, h = [float(v) for v in bbox_xywh]
    if keypoints_xy is not None and len(keypoints_xy) > _NOSE_TIP:
        image_y = float(keypoints_xy[_NOSE_TIP][1])
    else:
        image_y = y + h / 2.0
    # Flip so a higher head gives a larger value
    nose_y = clamp01(1.0 - image_y)
    face_width = clamp01(w) if w > 0 else None
    return FaceObservation(nose_y=nose_y, face_width=face_width)


class FaceLocator:
    """MediaPipe face detection wrapper producing one FaceObservation per frame."""

    def __init__(self, min_confidence: float = MIN_FACE_CONFIDENCE, model_selection: int = 0):
        self.detector = mp.solutions.face_detection.FaceDetection(
            model_selection=model_selection,
            min_detection_confidence=min_confidence,
        )

    def infer(self, frame_bgr: np.ndarray) -> Optional[FaceObservation]:
        """Return the most confident face, or None when no face is visible."""
        rgb = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)
        result = self.detector.process(rgb)
        if not result.detections:
            return None
        best = max(result.detections, key=lambda d: float(d.score[0]) if d.score else 0.0)
        loc = best.location_data
        box = loc.relative_bounding_box
        keypoints = [(float(k.x), float(k.y)) for k in loc.relative_keypoints] or None
        return observation_from_face((box.xmin, box.ymin, box.width, box.height), keypoints)

    def close(self) -> None:
        self.detector.close()
