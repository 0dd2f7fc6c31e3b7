"""
Decoding of raw detector output and per-class non-maximum suppression.

Output tensors are [1, features, boxes] or [1, boxes, features] with
features = 4 (cx, cy, w, h) + 1 (confidence) + class scores.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

import numpy as np

from models.detection import Detection
from models.errors import InferenceFault
from .preprocess import Letterbox

FEATURES_FIRST = "features_first"
BOXES_FIRST = "boxes_first"

BOX_FEATURES = 5
IOU_EPS = 1e-6


def infer_layout(dims: Sequence[int]) -> str:
    """
    Guess which axis of a [1, a, b] output holds the features.

    An axis shorter than 5 cannot hold features; otherwise the shorter axis
    is taken as the feature axis (boxes usually number in the thousands).
    """
    a, b = dims[1], dims[2]
    if a < BOX_FEATURES <= b:
        return BOXES_FIRST
    if b < BOX_FEATURES <= a:
        return FEATURES_FIRST
    return FEATURES_FIRST if a <= b else BOXES_FIRST


def layout_from_shape(shape: Sequence, class_count: int) -> Optional[str]:
    """Determine the layout from static model metadata, if unambiguous."""
    if len(shape) != 3:
        return None
    features = BOX_FEATURES + class_count
    a, b = shape[1], shape[2]
    a_match = isinstance(a, int) and a == features
    b_match = isinstance(b, int) and b == features
    if a_match and not b_match:
        return FEATURES_FIRST
    if b_match and not a_match:
        return BOXES_FIRST
    return None


def decode_output(
    output: np.ndarray,
    letterbox: Letterbox,
    confidence_threshold: float,
    class_names: Sequence[str] = (),
    layout: Optional[str] = None,
) -> List[Detection]:
    """
    Turn a raw output tensor into source-frame detections.

    Raises:
        InferenceFault: If the tensor shape cannot be interpreted.
    """
    out = np.asarray(output, dtype=np.float32)
    if out.ndim != 3 or out.shape[0] != 1:
        raise InferenceFault(f"Unexpected output shape {tuple(out.shape)}")

    layout = layout or infer_layout(out.shape)
    preds = out[0].T if layout == FEATURES_FIRST else out[0]
    if preds.shape[1] < BOX_FEATURES:
        raise InferenceFault(
            f"Output has {preds.shape[1]} features per box, need at least {BOX_FEATURES}"
        )

    conf = preds[:, 4]
    keep = preds[conf >= confidence_threshold]
    if keep.shape[0] == 0:
        return []

    if keep.shape[1] > BOX_FEATURES:
        class_ids = np.argmax(keep[:, BOX_FEATURES:], axis=1)
    else:
        class_ids = np.zeros(keep.shape[0], dtype=np.int64)

    dets: List[Detection] = []
    for row, class_id in zip(keep, class_ids):
        cx, cy, w, h, score = (float(v) for v in row[:BOX_FEATURES])
        x1, y1 = letterbox.to_source(cx - w / 2.0, cy - h / 2.0)
        x2, y2 = letterbox.to_source(cx + w / 2.0, cy + h / 2.0)
        cid = int(class_id)
        dets.append(
            Detection(
                x1=x1,
                y1=y1,
                x2=x2,
                y2=y2,
                score=score,
                class_id=cid,
                class_name=class_names[cid] if cid < len(class_names) else None,
            )
        )
    return dets


def compute_iou(a: Detection, b: Detection) -> float:
    ix1 = max(a.x1, b.x1)
    iy1 = max(a.y1, b.y1)
    ix2 = min(a.x2, b.x2)
    iy2 = min(a.y2, b.y2)
    inter = max(0.0, ix2 - ix1) * max(0.0, iy2 - iy1)
    return inter / (a.area + b.area - inter + IOU_EPS)


def non_max_suppression(dets: Sequence[Detection], iou_threshold: float) -> List[Detection]:
    """
    Greedy NMS within each class.

    Classes are emitted in order of first appearance; survivors within a
    class are in descending score order.
    """
    groups: Dict[int, List[Detection]] = {}
    for det in dets:
        groups.setdefault(det.class_id, []).append(det)

    keep: List[Detection] = []
    for group in groups.values():
        ranked = sorted(group, key=lambda d: d.score, reverse=True)
        suppressed = [False] * len(ranked)
        for i, chosen in enumerate(ranked):
            if suppressed[i]:
                continue
            keep.append(chosen)
            for j in range(i + 1, len(ranked)):
                if not suppressed[j] and compute_iou(chosen, ranked[j]) > iou_threshold:
                    suppressed[j] = True
    return keep

