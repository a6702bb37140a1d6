"""
Selects the video encoder for a batch.

Hardware encoders are tried in priority order (NVIDIA, AMD, Intel). A
candidate is accepted only if ffmpeg lists it as compiled in and a one-second
trial encode of a synthetic clip succeeds, since a listed encoder can still
fail at runtime without the matching GPU or driver. When no candidate passes,
or hardware acceleration is disabled, libx264 is used.
"""
import re
from typing import Dict, List, Optional, Tuple

from loguru import logger

from ..config.video import HARDWARE_PRIORITY, TRIAL_ENCODE_SOURCE
from ..domain.models import EncoderChoice, Vendor
from ..utils.ffmpeg_utils import run_cmd


class EncoderSelector:
    """
    Probes encoder capabilities once and remembers the result.

    The choice is cached per ``(use_hardware, preferred_vendor)`` so a batch
    does not repeat trial encodes for every file. ``select`` never raises.
    """

    def __init__(self, ffmpeg_bin: str):
        self.ffmpeg_bin = ffmpeg_bin
        self._encoders_text: Optional[str] = None
        self._cache: Dict[Tuple[bool, Optional[Vendor]], EncoderChoice] = {}

    def list_encoders(self, force_reprobe: bool = False) -> str:
        """Returns the output of ``ffmpeg -encoders`` (empty if it could not be run)."""
        if self._encoders_text is None or force_reprobe:
            result = run_cmd([self.ffmpeg_bin, "-hide_banner", "-encoders"])
            self._encoders_text = result.stdout if result is not None and result.returncode == 0 else ""
        return self._encoders_text

    def is_compiled_in(self, encoder: str) -> bool:
        pattern = re.compile(rf"^\s*\S+\s+{re.escape(encoder)}\b", re.MULTILINE)
        return bool(pattern.search(self.list_encoders()))

    def trial_encode(self, encoder: str) -> bool:
        """Encodes one second of a black test pattern to the null muxer."""
        cmd = [
            self.ffmpeg_bin,
            "-hide_banner",
            "-loglevel", "error",
            "-f", "lavfi",
            "-i", TRIAL_ENCODE_SOURCE,
            "-c:v", encoder,
            "-f", "null",
            "-",
        ]
        result = run_cmd(cmd, show_cmd=True)
        return result is not None and result.returncode == 0

    def is_usable(self, vendor: Vendor) -> bool:
        choice = EncoderChoice.for_vendor(vendor)
        if not self.is_compiled_in(choice.encoder):
            logger.debug(f"{choice.encoder} is not compiled into this ffmpeg.")
            return False
        if not self.trial_encode(choice.encoder):
            logger.debug(f"Trial encode with {choice.encoder} failed.")
            return False
        return True

    def available_hardware(self) -> List[Vendor]:
        """All hardware vendors whose encoder passes both checks, in priority order."""
        return [Vendor(name) for name in HARDWARE_PRIORITY if self.is_usable(Vendor(name))]

    def select(
        self,
        use_hardware: bool,
        preferred_vendor: Optional[Vendor] = None,
        force_reprobe: bool = False,
    ) -> EncoderChoice:
        """
        Returns the encoder to use for a batch.

        Args:
            use_hardware: If False, the software encoder is returned without probing.
            preferred_vendor: Probe only this vendor; if it fails, use software.
            force_reprobe: Ignore cached results and probe again.
        """
        key = (use_hardware, preferred_vendor)
        if not force_reprobe and key in self._cache:
            return self._cache[key]
        if force_reprobe:
            self._encoders_text = None

        choice = self._probe(use_hardware, preferred_vendor)
        self._cache[key] = choice
        logger.info(f"Selected video encoder: {choice.encoder} ({choice.vendor.value})")
        return choice

    def _probe(self, use_hardware: bool, preferred_vendor: Optional[Vendor]) -> EncoderChoice:
        if not use_hardware or preferred_vendor is Vendor.CPU:
            return EncoderChoice.for_vendor(Vendor.CPU)

        if preferred_vendor is not None:
            candidates = [preferred_vendor]
        else:
            candidates = [Vendor(name) for name in HARDWARE_PRIORITY]

        for vendor in candidates:
            if self.is_usable(vendor):
                return EncoderChoice.for_vendor(vendor)
            logger.info(f"{vendor.value} hardware encoder unavailable.")

        logger.info("No hardware encoder available; using software encoding.")
        return EncoderChoice.for_vendor(Vendor.CPU)
