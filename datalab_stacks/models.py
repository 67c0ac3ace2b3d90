"""
Stack request, record and status models.
"""

import re
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

NAME_PATTERN = re.compile(r"^[a-z0-9]{4,16}$")
PROJECT_KEY_PATTERN = re.compile(r"^[a-z0-9]([-a-z0-9]{0,61}[a-z0-9])?$")


class StackCategory(str, Enum):
    """Families of stack types that share lifecycle rules."""

    ANALYSIS = "ANALYSIS"
    PUBLISH = "PUBLISH"
    DATA_STORE = "DATA_STORE"
    CLUSTER = "CLUSTER"


class StackType(str, Enum):
    """Every kind of stack the platform can provision."""

    JUPYTER = "jupyter"
    JUPYTERLAB = "jupyterlab"
    ZEPPELIN = "zeppelin"
    RSTUDIO = "rstudio"
    RSHINY = "rshiny"
    NBVIEWER = "nbviewer"
    PANEL = "panel"
    VOILA = "voila"
    MINIO = "minio"
    DASK = "dask"
    SPARK = "spark"

    @property
    def category(self) -> StackCategory:
        return _CATEGORIES[self]

    @property
    def is_site(self) -> bool:
        return self.category == StackCategory.PUBLISH

    @property
    def is_cluster(self) -> bool:
        return self.category == StackCategory.CLUSTER

    def __str__(self) -> str:
        return self.value


_CATEGORIES = {
    StackType.JUPYTER: StackCategory.ANALYSIS,
    StackType.JUPYTERLAB: StackCategory.ANALYSIS,
    StackType.ZEPPELIN: StackCategory.ANALYSIS,
    StackType.RSTUDIO: StackCategory.ANALYSIS,
    StackType.RSHINY: StackCategory.PUBLISH,
    StackType.NBVIEWER: StackCategory.PUBLISH,
    StackType.PANEL: StackCategory.PUBLISH,
    StackType.VOILA: StackCategory.PUBLISH,
    StackType.MINIO: StackCategory.DATA_STORE,
    StackType.DASK: StackCategory.CLUSTER,
    StackType.SPARK: StackCategory.CLUSTER,
}


class Visibility(str, Enum):
    PRIVATE = "private"
    PROJECT = "project"
    PUBLIC = "public"


class StackStatus(str, Enum):
    REQUESTED = "requested"
    CREATING = "creating"
    READY = "ready"
    UNAVAILABLE = "unavailable"


class _StackIdentity(BaseModel):
    project_key: str
    name: str

    @field_validator("project_key")
    @classmethod
    def validate_project_key(cls, v):
        if not PROJECT_KEY_PATTERN.match(v):
            raise ValueError("projectKey must be a lowercase DNS label")
        return v

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not NAME_PATTERN.match(v):
            raise ValueError("Name must be 4-16 characters long and only use the characters a-z, 0-9")
        return v


class WorkspaceSpec(_StackIdentity):
    """A user's request for a new stack."""

    type: StackType
    display_name: str
    description: str
    volume_mount: Optional[str] = None
    version: Optional[str] = None
    shared: Visibility = Visibility.PRIVATE
    visible: Optional[Visibility] = None
    asset_ids: List[str] = Field(default_factory=list)
    conda_path: Optional[str] = None

    # Compute clusters
    max_workers: Optional[int] = Field(None, ge=1)
    max_worker_memory_gb: Optional[float] = Field(None, gt=0)
    max_worker_cpu: Optional[float] = Field(None, gt=0)

    # Sites
    source_path: Optional[str] = None
    filename: Optional[str] = None
    url: Optional[str] = None

    @model_validator(mode="after")
    def check_type_specific_fields(self):
        if self.type.is_site and not self.source_path:
            raise ValueError("sourcePath must be specified for publication request")
        if self.type.is_cluster:
            missing = [
                field for field in ("max_workers", "max_worker_memory_gb", "max_worker_cpu")
                if getattr(self, field) is None
            ]
            if missing:
                raise ValueError(f"Cluster requests must specify {', '.join(missing)}")
        return self


class StackReference(_StackIdentity):
    """Identifies an existing stack for restart, scale and delete."""

    type: StackType


class StackUpdate(_StackIdentity):
    """User-updatable fields of an existing stack. Unset fields are left alone."""

    display_name: Optional[str] = None
    description: Optional[str] = None
    shared: Optional[Visibility] = None
    asset_ids: Optional[List[str]] = None

    def updated_details(self) -> dict:
        return self.model_dump(
            include={"display_name", "description", "shared", "asset_ids"},
            exclude_none=True,
        )


class StackRecord(BaseModel):
    """Stack metadata as held by the metadata repository."""

    model_config = ConfigDict(from_attributes=True)

    id: Optional[str] = None
    project_key: str
    name: str
    type: StackType
    display_name: str = ""
    description: str = ""
    shared: Visibility = Visibility.PRIVATE
    asset_ids: List[str] = Field(default_factory=list)
    status: StackStatus = StackStatus.REQUESTED

    @property
    def category(self) -> StackCategory:
        return self.type.category


class Asset(BaseModel):
    """An entry in the central asset repository."""

    asset_id: str
    name: str
    version: str
    file_location: Optional[str] = None


class ScaleState(BaseModel):
    """Desired and observed replica counts of a deployment."""

    spec_replicas: int = 0
    status_replicas: int = 0

    @property
    def converged(self) -> bool:
        return self.spec_replicas == self.status_replicas

    def converged_at(self, replicas: int) -> bool:
        return self.spec_replicas == replicas and self.status_replicas == replicas

    @classmethod
    def from_scale(cls, scale: Any) -> "ScaleState":
        """Build from a V1Scale (or its dict form); missing counts read as 0."""
        if isinstance(scale, dict):
            spec = (scale.get("spec") or {}).get("replicas")
            status = (scale.get("status") or {}).get("replicas")
        else:
            spec = getattr(scale.spec, "replicas", None) if scale.spec else None
            status = getattr(scale.status, "replicas", None) if scale.status else None
        return cls(spec_replicas=spec or 0, status_replicas=status or 0)


class CreateStackResult(BaseModel):
    project_key: str
    name: str
    type: StackType
    asset_update_error: Optional[str] = None


class UpdateStackResult(BaseModel):
    stack: StackRecord
    asset_update_error: Optional[str] = None


class StackDeploymentSummary(BaseModel):
    """A running stack deployment as listed from the cluster."""

    deployment_name: str
    name: str
    namespace: str
    replicas: int
    type: str


class User(BaseModel):
    """The authenticated caller, as resolved by the request layer."""

    sub: str
    token: Optional[str] = None
