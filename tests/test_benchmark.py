import numpy as np
import pytest

from clbench.benchmark import generate_data, run_benchmark
from clbench.config import make_config
from clbench.errors import CorrectnessMismatch, DispatchError, EntryPointNotFound
from clbench.main import main

from conftest import FakePlatform


def small_config(**benchmark):
    return make_config(dict(benchmark=dict(dict(num_elements=1000, iterations=5), **benchmark)))


@pytest.fixture
def fake_gpu(fake_cl, gpu_device):
    fake_cl.platforms = [FakePlatform("Fake Platform", [gpu_device])]
    return fake_cl


def test_generate_data_is_seeded():
    a1, b1 = generate_data(100, seed=239)
    a2, b2 = generate_data(100, seed=239)

    assert a1.dtype == np.float32
    assert np.array_equal(a1, a2)
    assert np.array_equal(b1, b2)
    assert not np.array_equal(a1, b1)


def test_run_on_fake_device(fake_gpu):
    summary = run_benchmark(small_config())

    assert summary.passed
    assert summary.device_name == "Fake GPU"
    assert summary.device_type == "gpu"
    assert summary.global_size == 1024
    assert summary.iterations == 5
    assert summary.kernel_lap_avg > 0
    assert summary.throughput > 0
    assert fake_gpu.num_launches == 5
    assert len(fake_gpu.names("copy")) == 5


def test_all_resources_released(fake_gpu):
    run_benchmark(small_config())

    assert fake_gpu.names("release", "finish", "finalize") == [
        ("release", "allocate2"),
        ("release", "upload1"),
        ("release", "upload0"),
        ("finish", None),
        ("finalize", None),
    ]


def test_resources_released_on_failure(fake_gpu):
    fake_gpu.fail_wait_at = 1

    with pytest.raises(DispatchError):
        run_benchmark(small_config())

    assert len(fake_gpu.names("release")) == 3
    assert len(fake_gpu.names("finish")) == 1


def test_missing_entry_point(fake_gpu):
    with pytest.raises(EntryPointNotFound):
        run_benchmark(small_config(entry_point="aminusb"))

    assert len(fake_gpu.names("release")) == 3


def test_wrong_result_is_detected(fake_gpu):
    def broken(a, b, c, n):
        z = c.data.view(np.float32)
        z[:n] = a.data.view(np.float32)[:n] + b.data.view(np.float32)[:n]
        z[n // 2] = -1.0

    fake_gpu.kernel_bodies["aplusb"] = broken
    summary = run_benchmark(small_config())

    assert not summary.passed
    assert summary.verification.index == 500

    with pytest.raises(CorrectnessMismatch):
        summary.verification.raise_for_mismatch()


def test_wrong_result_fails_the_command(fake_gpu):
    fake_gpu.kernel_bodies["aplusb"] = lambda a, b, c, n: None

    assert main(["run", "-n", "1000", "--iterations", "5"]) == 1


def test_command_succeeds(fake_gpu, capsys):
    assert main(["run", "-n", "1000", "--iterations", "5"]) == 0
    assert "results match" in capsys.readouterr().out


def test_run_on_a_real_device(opencl_device):
    summary = run_benchmark(small_config(num_elements=1000000))

    assert summary.passed
    assert summary.global_size == 1000064
