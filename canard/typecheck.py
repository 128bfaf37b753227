"""Shared beartype configuration.

Under the PEP 484 numeric tower an ``int`` satisfies a ``float`` hint, so
``ThrustCurve(times=[0, 2, 5], ...)`` and ``initial_vz=50`` are accepted.
"""

from beartype import BeartypeConf

TOWER = BeartypeConf(is_pep484_tower=True)
