# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Tribunal - Multi-tier dispute resolution with worker stakes.

A worker whose submission is rejected can open a dispute. The dispute is
scored automatically (Tier 1), decided by a reliability-weighted jury when
the score is inconclusive (Tier 2), and reviewed by an administrator when
the jury decision is appealed (Tier 3). Every outcome settles the worker's
stake through a ledger-only or externally settled staking provider.

Layout:
  core      config, logging, exceptions, money, collaborator protocols
  storage   Store protocol and the in-memory unit-of-work store
  staking   stake sizing, custody and settlement
  disputes  scoring, jury, tier state machine, resolution and the service
  app       ``create_tribunal`` container
"""

__version__ = "0.1.0"

from .app import Tribunal, create_tribunal

__all__ = ["Tribunal", "create_tribunal", "__version__"]
