"""Tests for lazy import system in nostrforge.__init__."""

import subprocess
import sys

import pytest


class TestLazyImports:
    """Test PEP 562 lazy loading in nostrforge.__init__."""

    def test_lazy_import_does_not_eagerly_load(self) -> None:
        """Importing nostrforge alone loads none of its subpackages."""
        script = (
            "import sys, nostrforge\n"
            "loaded = [m for m in sys.modules if m.startswith('nostrforge.')]\n"
            "print(','.join(loaded))\n"
        )
        result = subprocess.run(
            [sys.executable, "-c", script], capture_output=True, text=True, check=True
        )
        assert result.stdout.strip() == ""

    def test_lazy_import_resolves_on_access(self) -> None:
        from nostrforge import CollaborationEngine
        from nostrforge.services.engine import CollaborationEngine as DirectEngine

        assert CollaborationEngine is DirectEngine

    def test_lazy_import_caches_after_first_access(self) -> None:
        import nostrforge

        _ = nostrforge.RelaySet
        assert "RelaySet" in vars(nostrforge)

    def test_lazy_import_invalid_attribute(self) -> None:
        import nostrforge

        with pytest.raises(AttributeError, match="no_such_thing"):
            _ = getattr(nostrforge, "no_such_thing")  # noqa: B009

    def test_all_exports_are_in_lazy_imports(self) -> None:
        import nostrforge

        assert set(nostrforge.__all__) == set(nostrforge._LAZY_IMPORTS)

    def test_dir_returns_all(self) -> None:
        import nostrforge

        assert dir(nostrforge) == nostrforge.__all__

    def test_version_is_accessible(self) -> None:
        import nostrforge

        assert isinstance(nostrforge.__version__, str)
        assert nostrforge.__version__
