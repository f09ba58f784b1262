# kuberhealthy

Synthetic health checks for Kubernetes clusters. The package holds the data
model of a health-check service, its metric exporters and a set of ready-made
checks. It uses only the Python standard library.

## Modules

- `kuberhealthy.health` – the overall cluster `State`, with its error list
  (`add_error` skips blank messages) and per-check and per-job details,
  rendered as indented JSON by `to_json` or written to a byte stream by
  `write_http_status_response`. `new_state()` returns a healthy state.
- `kuberhealthy.khstate` – `WorkloadDetails` (with `to_dict` / `from_dict`),
  `KuberhealthyState`, `KuberhealthyStateList`, the `WorkloadKind` enum and
  `CachedStateStore`, which looks states up by name in a cached list.
- `kuberhealthy.crds` – `KuberhealthyCheck` / `CheckConfig` and
  `KuberhealthyJob` / `JobConfig` resources, the `JobPhase` enum and the
  `new_kuberhealthy_check` / `new_kuberhealthy_job` constructors.
- `kuberhealthy.metrics` – Prometheus text output for a `State`
  (`generate_metrics`, `error_state_metrics`, `write_metric_error`) and
  `PromMetricsConfig`.
- `kuberhealthy.influx` – `InfluxClient`, which writes metric points to an
  InfluxDB 1.x server over its HTTP write API (TCP or a Unix socket), and
  `format_line` for the line protocol.
- `kuberhealthy.durations` – `parse_duration` and `format_duration` for
  strings such as `"1h2m3.5s"` or `"250ms"`.
- `kuberhealthy.kube` – `KubeClient`, a small read-only client for pods,
  events, namespaces and resource quotas, plus the `Pod`, `Event` and
  `ResourceQuota` records, `NotFoundError` / `is_not_found`, and the
  `Reporter` protocol that checks report to.
- `kuberhealthy.master` – `MasterCalculator`, which picks the running pod
  labelled `app=kuberhealthy` whose name sorts first as master.
- Checks:
  - `kuberhealthy.pod_status` – pods older than a grace period that are in
    the Pending, Failed or Unknown phase.
  - `kuberhealthy.pod_restarts` – `PodRestartsChecker`, pods with more
    `BackOff` warning events than allowed (default 10) that still exist.
  - `kuberhealthy.resource_quota` – namespaces whose CPU or memory usage is at
    or above a threshold of their quota (default 0.9), with namespace
    blacklist and whitelist.
  - `kuberhealthy.network_check` – `NetworkConnectionChecker` and
    `check_connection`, TCP/UDP reachability of a target.

## Installing

```
pip install .
```

For the test suite:

```
pip install ".[test]"
pytest
```

## Cluster state and metrics

```python
from kuberhealthy.health import new_state
from kuberhealthy.metrics import PromMetricsConfig, generate_metrics

state = new_state()
state.add_error("dns check timed out")

print(state.to_json())
print(generate_metrics(state, PromMetricsConfig()))
```

`generate_metrics` writes a `kuberhealthy_running` gauge, a
`kuberhealthy_cluster_state` gauge and, for every check and job, a status
gauge and a run-duration gauge. Error messages become an `error` label unless
`suppress_error_label` is set; `error_label_max_length` cuts the label to that
many bytes when it is positive.

## Running a check

A check needs a client and a reporter. `KubeClient.create` uses the pod's
service account when running inside a cluster and otherwise reads the given
kubeconfig file, which must be in JSON form. The reporter is any object with
`report_success()` and `report_failure(errors)`:

```python
from kuberhealthy.kube import KubeClient
from kuberhealthy.pod_status import run_pod_status_check


class PrintReporter:
    def report_success(self):
        print("OK")

    def report_failure(self, errors):
        print("FAILED:", errors)


client = KubeClient.create("kubeconfig.json")
run_pod_status_check(client, PrintReporter(), namespace="default", skip_duration="10m")
```

When not given, the namespace and skip duration come from the
`TARGET_NAMESPACE` and `SKIP_DURATION` environment variables. The resource
quota check reads its settings with `parse_settings` from `DEBUG`,
`BLACKLIST`, `WHITELIST`, `THRESHOLD` and `CHECK_TIME_LIMIT`; the pod restarts
check reads `POD_NAMESPACE` and `MAX_FAILURES_ALLOWED`.

## Network reachability

```python
from kuberhealthy.network_check import split_address

split_address("udp://10.0.0.1:53")   # ("udp", "10.0.0.1:53")
split_address("example.com:443")     # ("tcp", "example.com:443")
```

`check_connection` raises `ConnectionError` when the target cannot be
reached. `NetworkConnectionChecker` reports success instead when it was
created with `target_unreachable=True`.

## Generating CRD manifests

The custom resource manifests are produced by `controller-gen`, which must be
installed and on the path:

```
kuberhealthy-generate-crds
```

It runs `controller-gen` in `../pkg/apis/khcheck/v1`, `../pkg/apis/khjob/v1`
and `../pkg/apis/khstate/v1` relative to the current directory and writes the
manifests to `./generated`. `--controller-gen` sets the path of the tool;
`--gojsontoyaml` is accepted but not used. The command exits with status 1 on
the first failure.

## What this package does not do

- It has no server: nothing here schedules checks as pods, serves the status
  page or the metrics endpoint over HTTP, or keeps state resources in a
  cluster. `State` and the metric functions produce the content; serving it
  is left to the caller.
- It has no client that sends check results to a Kuberhealthy server. Checks
  report through the `Reporter` protocol, which the caller implements.
- The checks have no commands of their own; they are started from Python.
- `KubeClient` only reads, and only JSON kubeconfig files are understood.