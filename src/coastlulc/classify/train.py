#!/usr/bin/env python3
"""train.py

Random forest training, accuracy assessment and image classification.

Accuracy terms follow remote-sensing usage:
- producers' accuracy = per-class recall (reference view)
- consumers' accuracy = per-class precision (map user's view)
- kappa = Cohen's kappa over the test confusion matrix
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
from sklearn.ensemble import RandomForestClassifier
from sklearn.metrics import (
    accuracy_score,
    cohen_kappa_score,
    confusion_matrix,
    precision_recall_fscore_support,
)

from coastlulc.classify.samples import DEFAULT_LABEL_FIELD
from coastlulc.raster import RasterImage

DEFAULT_MODEL_BANDS = ("NDVI", "EVI", "MVI", "MSI", "elevation", "slope")


def train_classifier(
    training: pd.DataFrame,
    bands: Sequence[str] = DEFAULT_MODEL_BANDS,
    label_field: str = DEFAULT_LABEL_FIELD,
    n_trees: int = 100,
    seed: int = 0,
) -> RandomForestClassifier:
    if training.empty:
        raise ValueError("No training samples")
    clf = RandomForestClassifier(n_estimators=n_trees, random_state=seed)
    clf.fit(training[list(bands)].to_numpy(), training[label_field].astype(int).to_numpy())
    return clf


def evaluate(
    clf: RandomForestClassifier,
    testing: pd.DataFrame,
    bands: Sequence[str] = DEFAULT_MODEL_BANDS,
    label_field: str = DEFAULT_LABEL_FIELD,
) -> Dict[str, Any]:
    """Confusion-matrix metrics on held-out samples."""
    if testing.empty:
        raise ValueError("No testing samples")

    actual = testing[label_field].astype(int).to_numpy()
    predicted = clf.predict(testing[list(bands)].to_numpy())
    labels = sorted(set(actual.tolist()) | set(predicted.tolist()))

    precision, recall, fscore, _ = precision_recall_fscore_support(
        actual, predicted, labels=labels, zero_division=0
    )
    return {
        "labels": labels,
        "confusion_matrix": confusion_matrix(actual, predicted, labels=labels).tolist(),
        "accuracy": float(accuracy_score(actual, predicted)),
        "kappa": float(cohen_kappa_score(actual, predicted, labels=labels)),
        "producers_accuracy": [float(x) for x in recall],
        "consumers_accuracy": [float(x) for x in precision],
        "fscore": [float(x) for x in fscore],
        "importance": dict(zip(bands, (float(x) for x in clf.feature_importances_))),
    }


def classify_image(
    clf: RandomForestClassifier,
    image: RasterImage,
    bands: Sequence[str] = DEFAULT_MODEL_BANDS,
) -> np.ma.MaskedArray:
    """Predict a class per pixel; masked where any input band is masked."""
    subset = image.select(bands)
    valid = subset.validity()
    out = np.zeros(subset.shape, dtype=np.uint8)

    if valid.any():
        features = np.column_stack([subset[b].data[valid].astype(np.float64) for b in bands])
        out[valid] = clf.predict(features).astype(np.uint8)
    return np.ma.array(out, mask=~valid)


def _jsonable(value: Any) -> Any:
    if isinstance(value, (list, tuple, dict)):
        return json.dumps(value)
    return value


def metrics_table(
    metrics: Dict[str, Any],
    *,
    year: Optional[int],
    image_id: str,
    n_train: int,
    n_test: int,
    split: float,
    bands: Sequence[str],
) -> pd.DataFrame:
    """Long `metric,value` table for CSV export."""
    record: Dict[str, Any] = {
        "year": year,
        "imageId": image_id,
        "testSetN": n_test,
        "trainSetN": n_train,
        "totalSamples": n_train + n_test,
        "trainTestSplit": split,
        "bands": list(bands),
        "RF_labels": metrics["labels"],
        "RF_recall": metrics["producers_accuracy"],
        "RF_precision": metrics["consumers_accuracy"],
        "RF_fscore": metrics["fscore"],
        "RF_kappa": metrics["kappa"],
        "RF_overall_accuracy": metrics["accuracy"],
        "RF_importance": metrics["importance"],
        "RF_confusionMatrix": metrics["confusion_matrix"],
    }
    rows: List[Dict[str, Any]] = [{"metric": k, "value": _jsonable(v)} for k, v in record.items()]
    return pd.DataFrame(rows, columns=["metric", "value"])
