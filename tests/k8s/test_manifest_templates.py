"""
Unit tests for helpers.py

Tests that each manifest template renders the kubernetes object it claims to,
and that rendering is addressed only through generate_manifest().
"""

import pytest

pytest.importorskip("kubernetes")

from kubernetes import client

from datalab_stacks.services.orchestration.kubernetes.helpers import (
    TEMPLATES,
    AutoScalerTemplates,
    ConfigMapTemplates,
    DeploymentTemplates,
    NetworkPolicyTemplates,
    ServiceTemplates,
    generate_manifest,
)

LABELS = {"name": "jupyter-nb01-po", "user-pod": "jupyter"}


def _jupyter_context(**overrides):
    context = {
        "name": "jupyter-nb01",
        "labels": LABELS,
        "image": "nerc/jupyterlab:3.4.8",
        "domain": "proj-nb01.datalab.test",
        "base_path": "/",
        "service_account": "proj-compute-submission-account",
        "py_spark_config_map": "jupyter-nb01-pyspark-cm",
        "dask_config_map": "jupyter-nb01-dask-cm",
        "jupyter_config_map": "jupyter-nb01-jupyter-cm",
        "start_cmd": "lab",
        "collaborative": False,
    }
    context.update(overrides)
    return context


@pytest.mark.unit
class TestRendering:
    """Test template registry and dispatch."""

    def test_every_template_is_registered(self):
        for family in (DeploymentTemplates, ServiceTemplates, ConfigMapTemplates,
                       NetworkPolicyTemplates, AutoScalerTemplates):
            for template in family:
                assert template in TEMPLATES

    def test_unknown_context_keys_are_ignored(self):
        manifest = generate_manifest(_jupyter_context(unused="value"), DeploymentTemplates.JUPYTER_DEPLOYMENT)

        assert isinstance(manifest, client.V1Deployment)

    def test_rendering_is_pure(self):
        first = generate_manifest(_jupyter_context(), DeploymentTemplates.JUPYTER_DEPLOYMENT)
        second = generate_manifest(_jupyter_context(), DeploymentTemplates.JUPYTER_DEPLOYMENT)

        assert first == second


@pytest.mark.unit
class TestDeploymentTemplates:
    """Test deployment templates."""

    def test_jupyter_mounts_config_maps(self):
        manifest = generate_manifest(_jupyter_context(), DeploymentTemplates.JUPYTER_DEPLOYMENT)

        pod_spec = manifest.spec.template.spec
        config_maps = {v.config_map.name for v in pod_spec.volumes if v.config_map}
        assert config_maps == {"jupyter-nb01-pyspark-cm", "jupyter-nb01-dask-cm", "jupyter-nb01-jupyter-cm"}
        assert pod_spec.service_account_name == "proj-compute-submission-account"
        assert manifest.spec.selector.match_labels == {"name": "jupyter-nb01-po"}
        assert manifest.spec.template.metadata.labels == LABELS

    def test_jupyter_volume_mount_is_optional(self):
        without = generate_manifest(_jupyter_context(), DeploymentTemplates.JUPYTER_DEPLOYMENT)
        with_volume = generate_manifest(
            _jupyter_context(volume_mount="projectvol"), DeploymentTemplates.JUPYTER_DEPLOYMENT
        )

        claims = [
            v.persistent_volume_claim.claim_name
            for v in with_volume.spec.template.spec.volumes if v.persistent_volume_claim
        ]
        assert claims == ["projectvol-claim"]
        assert not any(v.persistent_volume_claim for v in without.spec.template.spec.volumes)

    def test_jupyter_collaborative_flag(self):
        manifest = generate_manifest(_jupyter_context(collaborative=True), DeploymentTemplates.JUPYTER_DEPLOYMENT)

        assert "--collaborative" in manifest.spec.template.spec.containers[0].args

    def test_site_command_uses_conda_bin(self):
        manifest = generate_manifest({
            "name": "voila-site1",
            "labels": {"name": "voila-site1-po"},
            "image": "nerc/jupyterlab:3.4.8",
            "source_path": "/data/site",
            "filename": "app.ipynb",
            "conda_path": "/data/conda/env1",
        }, DeploymentTemplates.VOILA_DEPLOYMENT)

        command = manifest.spec.template.spec.containers[0].command
        assert command[0] == "/data/conda/env1/bin/voila"
        assert command[1] == "/data/site/app.ipynb"

    def test_site_command_without_conda(self):
        manifest = generate_manifest({
            "name": "rshiny-site1",
            "labels": {"name": "rshiny-site1-po"},
            "image": "nerc/rshiny:4.2.2",
            "source_path": "/data/app",
        }, DeploymentTemplates.RSHINY_DEPLOYMENT)

        assert manifest.spec.template.spec.containers[0].command[0] == "R"

    def test_connect_sidecar(self):
        manifest = generate_manifest({
            "name": "minio-store1",
            "labels": {"name": "minio-store1-po"},
            "image": "minio/minio",
            "connect_image": "nerc/minio-connect:0.1.0",
            "volume_name": "store1",
            "domain": "proj-store1.datalab.test",
        }, DeploymentTemplates.MINIO_DEPLOYMENT)

        containers = manifest.spec.template.spec.containers
        assert [c.name for c in containers] == ["minio", "connect"]
        assert containers[1].image == "nerc/minio-connect:0.1.0"

    def test_dask_worker_points_at_scheduler_service(self):
        manifest = generate_manifest({
            "name": "dask-worker-cl01",
            "labels": {"name": "dask-worker-cl01-po"},
            "image": "daskdev/dask",
            "worker_path": "dask-worker",
            "scheduler_service_name": "dask-scheduler-cl01",
            "worker_memory": "4Gi",
            "worker_cpu": 1.0,
            "n_threads": 1,
            "death_timeout_sec": 60,
        }, DeploymentTemplates.DASK_WORKER_DEPLOYMENT)

        container = manifest.spec.template.spec.containers[0]
        assert container.args[:2] == ["dask-worker", "tcp://dask-scheduler-cl01:8786"]
        assert container.resources.limits == {"memory": "4Gi", "cpu": "1.0"}


@pytest.mark.unit
class TestOtherTemplates:
    """Test service, config map, network policy and autoscaler templates."""

    def test_service_selects_pod_label(self):
        manifest = generate_manifest(
            {"name": "jupyter-nb01", "pod_label": "jupyter-nb01-po"}, ServiceTemplates.JUPYTER_SERVICE
        )

        assert isinstance(manifest, client.V1Service)
        assert manifest.spec.selector == {"name": "jupyter-nb01-po"}
        assert manifest.spec.ports[0].target_port == 8888

    def test_headless_driver_service(self):
        manifest = generate_manifest(
            {"name": "jupyter-nb01-spark-driver-headless", "pod_label": "jupyter-nb01-po"},
            ServiceTemplates.SPARK_DRIVER_HEADLESS_SERVICE,
        )

        assert manifest.spec.cluster_ip == "None"

    def test_pyspark_config_map(self):
        manifest = generate_manifest({
            "config_map_name": "jupyter-nb01-pyspark-cm",
            "spark_image": "nerc/spark:3.3.1",
            "project_namespace": "proj",
            "project_compute_namespace": "proj-compute",
            "spark_driver_headless_service_name": "jupyter-nb01-spark-driver-headless",
            "job_name": "jupyter-nb01-spark-job",
        }, ConfigMapTemplates.PYSPARK_CONFIGMAP)

        defaults = manifest.data["spark-defaults.conf"]
        assert "spark.kubernetes.namespace proj-compute" in defaults
        assert "spark.driver.host jupyter-nb01-spark-driver-headless.proj.svc.cluster.local" in defaults

    def test_network_policy_selects_scheduler(self):
        manifest = generate_manifest({
            "name": "dask-scheduler-cl01-netpol",
            "scheduler_pod_label": "dask-scheduler-cl01-po",
            "project_key": "proj",
            "project_compute_namespace": "proj-compute",
        }, NetworkPolicyTemplates.DASK_SCHEDULER_NETWORK_POLICY)

        assert manifest.spec.pod_selector.match_labels == {"name": "dask-scheduler-cl01-po"}
        assert [p.port for p in manifest.spec.ingress[0].ports] == [8786, 8787]

    def test_auto_scaler_targets_deployment(self):
        manifest = generate_manifest({
            "name": "dask-worker-cl01-hpa",
            "scale_deployment_name": "dask-worker-cl01",
            "max_replicas": 4,
            "target_cpu_utilization": 80,
            "target_memory_utilization": 70,
            "scale_down_window_sec": 60,
        }, AutoScalerTemplates.AUTO_SCALER)

        assert manifest.spec.scale_target_ref.name == "dask-worker-cl01"
        assert manifest.spec.max_replicas == 4
        assert manifest.spec.behavior.scale_down.stabilization_window_seconds == 60
        assert [m.resource.target.average_utilization for m in manifest.spec.metrics] == [80, 70]
