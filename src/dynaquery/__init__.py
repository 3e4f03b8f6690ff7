from __future__ import annotations

import json
import re
from importlib.resources import files
from typing import TYPE_CHECKING, Any

from .batch import DeleteRequest, PutRequest, RetryPolicy
from .codec import ItemCodec
from .conditions import FieldCondition, WriteCondition
from .errors import (
    AwsError,
    BatchIncompleteError,
    ConditionalCheckFailedError,
    DynaqueryError,
    IndexNotFoundError,
    InvalidItemError,
    InvalidOperandError,
    InvalidSegmentError,
    NotFoundError,
    ResourceInUseError,
    ResourceNotFoundError,
    UnsupportedOperatorError,
    ValidationError,
)
from .expressions import ConditionFragment, ConditionList, Operator, compile_condition
from .model import (
    AttributeConverter,
    IndexDefinition,
    IndexSpec,
    ModelDefinition,
    ModelDefinitionError,
    OperatorGroup,
    dynaquery_field,
    gsi,
    lsi,
)
from .pages import Page
from .parallel import ParallelScan
from .query import QueryBuilder
from .request import ReadOptions, build_request
from .scan import ScanBuilder
from .table import Table

if TYPE_CHECKING:
    from .runtime import AwsCallMetric, create_boto_config, dynamodb_client, instrument_client, is_lambda_environment


def _read_repo_version() -> str:
    try:
        data = json.loads(files(__package__).joinpath("version.json").read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return "0.0.0"

    version = data.get("version")
    return version if isinstance(version, str) and version else "0.0.0"


def _normalize_repo_version(repo_version: str) -> str:
    match = re.match(r"^(\d+\.\d+\.\d+)-rc\.?([0-9]+)$", repo_version)
    if match:
        return f"{match.group(1)}rc{match.group(2)}"
    return repo_version


__repo_version__ = _read_repo_version()
__version__ = _normalize_repo_version(__repo_version__)


def __getattr__(name: str) -> Any:
    if name in {
        "AwsCallMetric",
        "create_boto_config",
        "dynamodb_client",
        "instrument_client",
        "is_lambda_environment",
    }:
        from . import runtime

        return getattr(runtime, name)
    raise AttributeError(name)


__all__ = [
    "AttributeConverter",
    "AwsCallMetric",
    "AwsError",
    "BatchIncompleteError",
    "ConditionFragment",
    "ConditionList",
    "ConditionalCheckFailedError",
    "DeleteRequest",
    "DynaqueryError",
    "FieldCondition",
    "IndexDefinition",
    "IndexNotFoundError",
    "IndexSpec",
    "InvalidItemError",
    "InvalidOperandError",
    "InvalidSegmentError",
    "ItemCodec",
    "ModelDefinition",
    "ModelDefinitionError",
    "NotFoundError",
    "Operator",
    "OperatorGroup",
    "Page",
    "ParallelScan",
    "PutRequest",
    "QueryBuilder",
    "ReadOptions",
    "ResourceInUseError",
    "ResourceNotFoundError",
    "RetryPolicy",
    "ScanBuilder",
    "Table",
    "UnsupportedOperatorError",
    "ValidationError",
    "WriteCondition",
    "__repo_version__",
    "__version__",
    "build_request",
    "compile_condition",
    "create_boto_config",
    "dynamodb_client",
    "dynaquery_field",
    "gsi",
    "instrument_client",
    "is_lambda_environment",
    "lsi",
]
