"""Top‑level package for Pak Builder.

Pak Builder is a terminal launcher for repackaging Unreal Engine mods.
Each sub-folder of a configured mods directory is one *mod*; building
it runs the external ``retoc`` packer (``retoc to-zen``) on the folder
and moves the produced ``.utoc``/``.ucas``/``.pak`` files into the
game's ``Paks`` directory.  Users can build a single mod, a hand picked
set (built in parallel) or every mod (built one after another).

The public API surface consists of the following key classes and
functions:

* :class:`pak_builder.config_service.ConfigService` – resolves the
  configuration directory, loads/saves ``config.json`` with schema
  validation and applies portable mode logic.
* :class:`pak_builder.config_service.BuildConfig` – the explicit
  configuration value handed to every build component.
* :func:`pak_builder.repository.discover` – lists mod folders as
  immutable :class:`pak_builder.repository.Unit` descriptors.
* :class:`pak_builder.builder.UnitBuilder` – packs one mod and
  relocates its output through :class:`pak_builder.relocator.Relocator`.
* :class:`pak_builder.orchestrator.Orchestrator` and
  :class:`pak_builder.orchestrator.BuildSession` – run batches and
  report a :class:`pak_builder.orchestrator.BatchResult`.
* :mod:`pak_builder.cli` – the ``pak-builder`` command and interactive
  menu.

Run ``python -m pak_builder`` to start the menu.
"""

from .builder import BuildOutcome, FailureReason, UnitBuilder  # noqa: F401
from .config_service import BuildConfig, ConfigService  # noqa: F401
from .orchestrator import BatchResult, BuildSession, Orchestrator, Selection  # noqa: F401
from .relocator import Relocator  # noqa: F401
from .repository import Unit, discover, format_display_name  # noqa: F401
