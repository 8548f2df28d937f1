"""OpenClawd - rootfs bootstrap e Bionic Bypass para o gateway OpenClaw no Android."""

__version__ = "1.0.0"
