"""
Encoder Adapter

Boundary to the pretrained encoder. The core only depends on the
EncoderAdapter protocol:

    infer(batch (B, W, F) float array) -> array | [array, ...]

TorchEncoderAdapter runs a TorchScript export on a pinned, deterministic CPU
backend. Every call is a scoped acquisition of the backend: the pin is
re-checked on entry and every tensor created for the call is released on exit,
including when the forward pass raises.
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Tuple, Union
import logging

import numpy as np
import torch

from vaeguard.ml_layer.config import RuntimeConfig
from vaeguard.ml_layer.exceptions import ModelLoadError

LOG = logging.getLogger(__name__)


class TorchEncoderAdapter:
    """
    TorchScript encoder on a fixed numeric backend.

    Outputs:
        tuple/list/dict of tensors -> ordered list of float64 arrays
        single tensor              -> float64 array
    """

    def __init__(self, model: torch.nn.Module, runtime: Optional[RuntimeConfig] = None):
        self.runtime = runtime or RuntimeConfig()
        self.device = torch.device(self.runtime.device)

        self._pin_backend()

        self.model = model.to(self.device)
        self.model.eval()

        LOG.info(f"Encoder adapter ready on {self.device} "
                 f"(threads={self.runtime.num_threads}, deterministic={self.runtime.deterministic})")

    @classmethod
    def load(cls, path: Union[str, Path], runtime: Optional[RuntimeConfig] = None) -> 'TorchEncoderAdapter':
        """
        Load a TorchScript encoder.

        Raises:
            ModelLoadError: file missing or not a loadable TorchScript archive
        """
        runtime = runtime or RuntimeConfig()
        path = Path(path)

        if not path.exists():
            raise ModelLoadError(f"Encoder artifact not found: {path}")

        try:
            model = torch.jit.load(str(path), map_location=runtime.device)
        except (RuntimeError, ValueError, OSError) as e:
            raise ModelLoadError(f"Model failed to load: {e}") from e

        try:
            adapter = cls(model, runtime)
        except (RuntimeError, ValueError, AssertionError) as e:
            # AssertionError: device backend not compiled into this torch build
            raise ModelLoadError(f"Encoder could not be placed on {runtime.device}: {e}") from e

        LOG.info(f"Loaded encoder from {path}")
        return adapter

    def _pin_backend(self):
        """Force the session backend before any tensor work"""
        torch.set_num_threads(self.runtime.num_threads)
        if self.runtime.deterministic:
            torch.use_deterministic_algorithms(True)

    def _ensure_backend(self):
        """Reset the backend if anything moved it since the last call"""
        param = next(self.model.parameters(), None)
        if param is not None and param.device != self.device:
            LOG.warning(f"Encoder moved to {param.device}; resetting to {self.device}")
            self.model.to(self.device)

        if torch.get_num_threads() != self.runtime.num_threads:
            LOG.warning(f"Thread count changed to {torch.get_num_threads()}; "
                        f"resetting to {self.runtime.num_threads}")
            torch.set_num_threads(self.runtime.num_threads)

    @contextmanager
    def backend_session(self, batch: np.ndarray) -> Iterator[Tuple[torch.Tensor, List[torch.Tensor]]]:
        """
        Scoped backend acquisition for one forward pass.

        Yields:
            (input_tensor, held) - append every tensor created in the scope
            to `held`; all of them are released on exit.
        """
        self._ensure_backend()

        inputs = torch.as_tensor(
            np.ascontiguousarray(batch, dtype=np.float32),
            device=self.device
        )
        held: List[torch.Tensor] = [inputs]
        try:
            with torch.inference_mode():
                yield inputs, held
        finally:
            held.clear()
            del inputs

    def infer(self, batch: np.ndarray) -> Union[np.ndarray, List[np.ndarray]]:
        """Run the encoder on a scaled (B, W, F) batch"""
        with self.backend_session(batch) as (inputs, held):
            out = self.model(inputs)

            if isinstance(out, dict):
                tensors = list(out.values())
            elif isinstance(out, (tuple, list)):
                tensors = list(out)
            else:
                tensors = [out]
            held.extend(tensors)

            arrays = [t.detach().cpu().numpy().astype(np.float64) for t in tensors]
            single = isinstance(out, torch.Tensor)
            del out, tensors

        return arrays[0] if single else arrays
