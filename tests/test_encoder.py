"""
Tests for the TorchScript encoder adapter.

Run: pytest tests/test_encoder.py -v
"""

import numpy as np
import pytest

torch = pytest.importorskip("torch")

from vaeguard.ml_layer.config import RuntimeConfig  # noqa: E402
from vaeguard.ml_layer.encoder import TorchEncoderAdapter  # noqa: E402
from vaeguard.ml_layer.exceptions import ModelLoadError  # noqa: E402
from vaeguard.ml_layer.reconstruction import compute_batch_errors  # noqa: E402


# ============================================================================
# FIXTURES
# ============================================================================

class TinyVAEEncoder(torch.nn.Module):
    """(B, W, F) → (z_mean, z_log_var), each (B, 3)"""

    def __init__(self):
        super().__init__()
        self.linear = torch.nn.Linear(7, 3)

    def forward(self, x):
        h = self.linear(x).mean(dim=1)
        return h, torch.zeros_like(h)


class TinyLatentEncoder(torch.nn.Module):
    """(B, W, F) → latent (B, 3)"""

    def __init__(self):
        super().__init__()
        self.linear = torch.nn.Linear(7, 3)

    def forward(self, x):
        return self.linear(x).mean(dim=1)


@pytest.fixture
def runtime():
    return RuntimeConfig(device="cpu", num_threads=1, deterministic=False)


@pytest.fixture
def vae_path(tmp_path):
    torch.manual_seed(0)
    path = tmp_path / "encoder.pt"
    torch.jit.save(torch.jit.script(TinyVAEEncoder()), str(path))
    return path


@pytest.fixture
def latent_path(tmp_path):
    torch.manual_seed(0)
    path = tmp_path / "latent.pt"
    torch.jit.save(torch.jit.script(TinyLatentEncoder()), str(path))
    return path


@pytest.fixture
def batch():
    return np.random.RandomState(5).uniform(0, 1, size=(4, 20, 7))


# ============================================================================
# TESTS
# ============================================================================

class TestTorchEncoderAdapter:
    """Test loading and inference"""

    def test_tuple_output(self, vae_path, runtime, batch):
        adapter = TorchEncoderAdapter.load(vae_path, runtime)
        out = adapter.infer(batch)

        assert isinstance(out, list)
        assert len(out) == 2
        assert out[0].shape == (4, 3)
        assert out[0].dtype == np.float64

    def test_single_output(self, latent_path, runtime, batch):
        adapter = TorchEncoderAdapter.load(latent_path, runtime)
        out = adapter.infer(batch)

        assert isinstance(out, np.ndarray)
        assert out.shape == (4, 3)

    def test_errors_from_real_encoder(self, vae_path, runtime, batch):
        adapter = TorchEncoderAdapter.load(vae_path, runtime)
        errors = compute_batch_errors(batch, adapter.infer(batch), 4)
        assert errors.shape == (4,)
        assert (errors >= 0).all()

    def test_deterministic(self, vae_path, runtime, batch):
        adapter = TorchEncoderAdapter.load(vae_path, runtime)
        first = adapter.infer(batch)
        second = adapter.infer(batch)
        np.testing.assert_array_equal(first[0], second[0])

    def test_thread_count_pinned(self, vae_path, runtime, batch):
        adapter = TorchEncoderAdapter.load(vae_path, runtime)
        torch.set_num_threads(2)
        adapter.infer(batch)
        assert torch.get_num_threads() == 1

    def test_session_releases_tensors(self, vae_path, runtime, batch):
        adapter = TorchEncoderAdapter.load(vae_path, runtime)
        with adapter.backend_session(batch) as (inputs, held):
            assert inputs.shape == (4, 20, 7)
            assert len(held) == 1
        assert held == []

    def test_session_releases_on_error(self, vae_path, runtime, batch):
        adapter = TorchEncoderAdapter.load(vae_path, runtime)
        with pytest.raises(RuntimeError):
            with adapter.backend_session(batch) as (_, held):
                raise RuntimeError("forward failed")
        assert held == []

    def test_missing_file(self, tmp_path, runtime):
        with pytest.raises(ModelLoadError):
            TorchEncoderAdapter.load(tmp_path / "nope.pt", runtime)

    def test_backend_setup_failure(self, vae_path):
        """Errors while pinning the backend surface as ModelLoadError"""
        bad_runtime = RuntimeConfig(device="cpu", num_threads=0, deterministic=False)
        with pytest.raises(ModelLoadError):
            TorchEncoderAdapter.load(vae_path, bad_runtime)

    def test_corrupt_file(self, tmp_path, runtime):
        path = tmp_path / "encoder.pt"
        path.write_bytes(b"not a torchscript archive")
        with pytest.raises(ModelLoadError):
            TorchEncoderAdapter.load(path, runtime)
