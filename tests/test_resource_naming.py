"""
Unit tests for resource_naming.py

Names must be deterministic, distinct within a project, and never rewritten.
"""

import pytest

from datalab_stacks.models import StackType
from datalab_stacks.utils import resource_naming as naming


@pytest.mark.unit
class TestStackResourceNames:
    """Test names derived from a stack's identity."""

    def test_deployment_name_prefixes_type(self):
        assert naming.deployment_name("notebook1", StackType.JUPYTERLAB) == "jupyterlab-notebook1"

    def test_service_shares_deployment_name(self):
        assert naming.service_name("notebook1", StackType.JUPYTER) == naming.deployment_name(
            "notebook1", StackType.JUPYTER
        )

    def test_suffixed_names(self):
        assert naming.pod_label("notebook1", StackType.JUPYTER) == "jupyter-notebook1-po"
        assert naming.network_policy_name("mycluster", StackType.DASK) == "dask-mycluster-netpol"
        assert naming.auto_scaler_name("mycluster", StackType.DASK) == "dask-mycluster-hpa"

    def test_config_map_names(self):
        deployment = naming.deployment_name("notebook1", StackType.JUPYTER)
        assert naming.py_spark_config_map(deployment) == "jupyter-notebook1-pyspark-cm"
        assert naming.dask_config_map(deployment) == "jupyter-notebook1-dask-cm"
        assert naming.jupyter_config_map(deployment) == "jupyter-notebook1-jupyter-cm"
        assert naming.rstudio_config_map("rstudio-ide1") == "rstudio-ide1-rstudio-cm"

    def test_base_path_defaults_to_root(self):
        assert naming.base_path("proj", "notebook1") == "/"

    def test_base_path_under_single_hostname(self):
        assert naming.base_path("proj", "notebook1", single_hostname=True) == "/resource/proj/notebook1"

    def test_role_qualified_cluster_names(self):
        scheduler = naming.scheduler_name("mycluster")
        worker = naming.worker_name("mycluster")

        assert naming.deployment_name(scheduler, StackType.DASK) == "dask-scheduler-mycluster"
        assert naming.deployment_name(worker, StackType.DASK) == "dask-worker-mycluster"

    def test_names_are_deterministic(self):
        first = [naming.deployment_name("notebook1", StackType.RSTUDIO) for _ in range(3)]
        assert len(set(first)) == 1

    def test_distinct_stacks_get_distinct_names(self):
        names = {
            naming.deployment_name(name, stack_type)
            for name in ("aaaa", "bbbb")
            for stack_type in StackType
        }
        assert len(names) == 2 * len(StackType)


@pytest.mark.unit
class TestNamespaces:
    """Test project namespace derivation."""

    def test_project_namespace_is_key(self):
        assert naming.project_namespace("myproject") == "myproject"

    def test_compute_namespace(self):
        assert naming.project_compute_namespace("myproject") == "myproject-compute"

    def test_compute_submission_service_account(self):
        assert naming.compute_submission_service_account("myproject") == (
            "myproject-compute-submission-account"
        )


@pytest.mark.unit
class TestNameValidation:
    """Unsafe input is rejected rather than rewritten."""

    @pytest.mark.parametrize("name", ["Notebook", "note_book", "", "-notebook", "notebook-"])
    def test_rejects_unsafe_stack_name(self, name):
        with pytest.raises(ValueError):
            naming.deployment_name(name, StackType.JUPYTER)

    def test_rejects_unsafe_project_key(self):
        with pytest.raises(ValueError):
            naming.project_namespace("My Project")

    def test_rejects_overlong_names(self):
        with pytest.raises(ValueError, match="exceeds 63 characters"):
            naming.deployment_name("a" * 60, StackType.JUPYTERLAB)


@pytest.mark.unit
class TestStackLabels:
    """Test standard stack labels."""

    def test_labels_select_pods_and_mark_user_pods(self):
        labels = naming.stack_labels("myproject", "notebook1", StackType.JUPYTER)

        assert labels["name"] == "jupyter-notebook1-po"
        assert labels["user-pod"] == "jupyter"
        assert labels["datalab.io/project-key"] == "myproject"
        assert "datalab.io/role" not in labels

    def test_role_label(self):
        labels = naming.stack_labels(
            "myproject", naming.scheduler_name("mycluster"), StackType.DASK, role="scheduler"
        )

        assert labels["datalab.io/role"] == "scheduler"
        assert labels["name"] == "dask-scheduler-mycluster-po"
