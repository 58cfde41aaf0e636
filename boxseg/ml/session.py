"""
Model Session Module

Explicit, load-once handle around an inference runtime. The default
backend wraps ONNX Runtime; tests and embedders can hand in any object
satisfying InferenceBackend.
"""

import asyncio
import logging
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Sequence, runtime_checkable

import numpy as np

from .errors import ModelUnavailable

logger = logging.getLogger(__name__)

DEFAULT_INPUT_NAMES = ["input", "images", "image", "input_image"]


class SessionStatus(Enum):
    UNLOADED = "unloaded"
    READY = "ready"
    FAILED = "failed"


@runtime_checkable
class InferenceBackend(Protocol):
    """
    Capability the inference strategy depends on.

    Implementations run a single image tensor under a named input and
    return the outputs in declaration order.
    """

    def declared_input_names(self) -> Sequence[str]:
        """Input names the model declares (may be empty)"""
        ...

    def run(self, name: str, tensor: np.ndarray) -> Dict[str, np.ndarray]:
        """
        Run the model with ``tensor`` bound to input ``name``.

        Returns:
            Ordered mapping of output name to array
        """
        ...


class OnnxBackend:
    """ONNX Runtime implementation of InferenceBackend"""

    def __init__(self, model_path: str, device: str = "cpu"):
        """
        Create an ONNX Runtime session.

        Args:
            model_path: Path to the .onnx model file
            device: "cuda", "mps" or "cpu"; only cuda changes providers
        """
        import onnxruntime as ort

        self.model_path = Path(model_path)
        self.device = device

        providers = self._get_providers()
        logger.info(f"Loading ONNX model {self.model_path.name} with providers: {providers}")

        sess_options = ort.SessionOptions()
        sess_options.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL

        self._session = ort.InferenceSession(
            str(self.model_path),
            sess_options=sess_options,
            providers=providers
        )
        self._output_names = [o.name for o in self._session.get_outputs()]

        logger.info(f"ONNX Runtime using: {self._session.get_providers()[0]}")

    def _get_providers(self) -> List[str]:
        """Get ONNX Runtime execution providers based on device."""
        if self.device == "cuda":
            return ['CUDAExecutionProvider', 'CPUExecutionProvider']
        return ['CPUExecutionProvider']

    def declared_input_names(self) -> List[str]:
        return [i.name for i in self._session.get_inputs()]

    def run(self, name: str, tensor: np.ndarray) -> Dict[str, np.ndarray]:
        outputs = self._session.run(None, {name: tensor})
        return dict(zip(self._output_names, outputs))


class ModelSession:
    """
    Load-once, reuse-many model session.

    Status moves UNLOADED -> READY or UNLOADED -> FAILED exactly once.
    A FAILED session is never retried; call reset() to re-initialize.
    """

    def __init__(
        self,
        model_path: Optional[str] = None,
        device: str = "cpu",
        input_names: Optional[Sequence[str]] = None
    ):
        """
        Initialize an unloaded session.

        Args:
            model_path: Path to an ONNX model; None means fallback-only
            device: Device hint passed to the backend
            input_names: Fallback input names tried when the model
                declares none
        """
        self.model_path = model_path
        self.device = device
        self.input_names = list(input_names) if input_names else list(DEFAULT_INPUT_NAMES)
        self.status = SessionStatus.UNLOADED
        self.backend: Optional[InferenceBackend] = None

    @classmethod
    def from_backend(
        cls,
        backend: InferenceBackend,
        input_names: Optional[Sequence[str]] = None
    ) -> "ModelSession":
        """Wrap an already constructed backend as a READY session"""
        session = cls(model_path=None, input_names=input_names)
        session.backend = backend
        session.status = SessionStatus.READY
        return session

    @property
    def is_ready(self) -> bool:
        return self.status is SessionStatus.READY and self.backend is not None

    def load(self) -> bool:
        """
        Load the model if it has not been attempted yet.

        Returns:
            True if the session is ready after the call
        """
        if self.status is not SessionStatus.UNLOADED:
            return self.is_ready

        if not self.model_path:
            logger.info("No model path provided - running in fallback mode")
            return False

        try:
            self.backend = OnnxBackend(self.model_path, device=self.device)
            self.status = SessionStatus.READY
            logger.info("Model session loaded successfully")
        except Exception as e:
            logger.error(f"Failed to load model session from {self.model_path}: {e}")
            self.backend = None
            self.status = SessionStatus.FAILED

        return self.is_ready

    async def aload(self) -> bool:
        """Awaitable load(); the blocking load runs in a worker thread"""
        return await asyncio.to_thread(self.load)

    def reset(self):
        """Drop the backend and return to UNLOADED so load() may run again"""
        self.backend = None
        self.status = SessionStatus.UNLOADED

    def input_name_candidates(self) -> List[str]:
        """
        Ordered input names to try.

        Raises:
            ModelUnavailable: If the session is not ready
        """
        if not self.is_ready:
            raise ModelUnavailable(f"Model session is {self.status.value}")

        declared = list(self.backend.declared_input_names() or [])
        return declared or list(self.input_names)

    def run(self, name: str, tensor: np.ndarray) -> Dict[str, np.ndarray]:
        """
        Run the backend under input ``name``.

        Raises:
            ModelUnavailable: If the session is not ready
        """
        if not self.is_ready:
            raise ModelUnavailable(f"Model session is {self.status.value}")
        return self.backend.run(name, tensor)
