"""
Unit tests for plugin module resolution.
"""

import json

import pytest

from lws.resolver import ModuleResolver


def write_plugin(directory, filename, source):
    path = directory / filename
    path.write_text(source)
    return path


class TestCandidates:
    def test_prefix_first(self):
        """Test that the prefixed name is tried first."""
        resolver = ModuleResolver("lws-")
        assert resolver.candidates("cors") == ["lws-cors", "cors"]

    def test_already_prefixed(self):
        """Test a name that already has the prefix."""
        resolver = ModuleResolver("lws-")
        assert resolver.candidates("lws-cors") == ["lws-cors"]

    def test_paths_are_not_prefixed(self):
        """Test that paths are used as given."""
        resolver = ModuleResolver("lws-")
        assert resolver.candidates("./mw/cors.py") == ["./mw/cors.py"]

    def test_no_prefix(self):
        """Test candidates without a prefix."""
        assert ModuleResolver().candidates("cors") == ["cors"]


class TestResolve:
    """Tests for the lookup order."""

    def test_file_path(self, plugin_dir):
        """Test loading a module from a file path."""
        path = write_plugin(plugin_dir, "hello.py", "VALUE = 'file'\n")

        module = ModuleResolver().resolve(str(path))

        assert module.VALUE == "file"

    def test_package_directory(self, plugin_dir):
        """Test loading a package directory."""
        package = plugin_dir / "pkg_plugin"
        package.mkdir()
        write_plugin(package, "__init__.py", "VALUE = 'package'\n")

        module = ModuleResolver().resolve(str(package))

        assert module.VALUE == "package"

    def test_search_path_with_prefix(self, plugin_dir):
        """Test finding a prefixed module on the search path."""
        write_plugin(plugin_dir, "lws-cors.py", "VALUE = 'prefixed'\n")
        write_plugin(plugin_dir, "cors.py", "VALUE = 'plain'\n")

        module = ModuleResolver("lws-", [plugin_dir]).resolve("cors")

        assert module.VALUE == "prefixed"

    def test_search_path_underscore_form(self, plugin_dir):
        """Test the underscore form of a dashed name."""
        write_plugin(plugin_dir, "lws_gzip.py", "VALUE = 'underscore'\n")

        module = ModuleResolver("lws-", [plugin_dir]).resolve("gzip")

        assert module.VALUE == "underscore"

    def test_falls_back_to_unprefixed(self, plugin_dir):
        """Test falling back to the bare name."""
        write_plugin(plugin_dir, "spa.py", "VALUE = 'plain'\n")

        module = ModuleResolver("lws-", [plugin_dir]).resolve("spa")

        assert module.VALUE == "plain"

    def test_regular_import(self):
        """Test an importable module."""
        assert ModuleResolver("lws-").resolve("json") is json

    def test_not_found_returns_none(self, plugin_dir):
        """Test that a missing module returns None."""
        resolver = ModuleResolver("lws-", [plugin_dir])

        assert resolver.resolve("does-not-exist") is None
        assert "import lws_does_not_exist" in resolver.tried
        assert "import does_not_exist" in resolver.tried
        assert str(plugin_dir / "lws-does-not-exist.py") in resolver.tried

    def test_cached(self, plugin_dir):
        """Test that resolved modules are cached."""
        write_plugin(plugin_dir, "counter.py", "VALUE = object()\n")
        resolver = ModuleResolver("", [plugin_dir])

        assert resolver.resolve("counter") is resolver.resolve("counter")

    def test_import_error_inside_plugin_propagates(self, plugin_dir):
        """Test that a plugin's own import errors propagate."""
        write_plugin(plugin_dir, "broken.py", "import lws_missing_dependency_xyz\n")

        with pytest.raises(ModuleNotFoundError):
            ModuleResolver("", [plugin_dir]).resolve("broken")


class TestLoad:
    """Tests for picking a module's export."""

    def test_plugin_attribute(self, plugin_dir):
        """Test the plugin export."""
        write_plugin(plugin_dir, "exported.py", "def plugin(options):\n    return options\n")

        export = ModuleResolver("", [plugin_dir]).load("exported")

        assert callable(export)
        assert export.__name__ == "plugin"

    def test_module_without_plugin_attribute(self, plugin_dir):
        """Test a module without a plugin export."""
        write_plugin(plugin_dir, "bare.py", "def middleware(options):\n    return None\n")

        export = ModuleResolver("", [plugin_dir]).load("bare")

        assert export.__name__ == "lws_plugin_bare"

    def test_explicit_attribute(self, plugin_dir):
        """Test a module:attribute name."""
        write_plugin(plugin_dir, "several.py", "def first():\n    pass\n\ndef second():\n    pass\n")

        export = ModuleResolver("", [plugin_dir]).load("several:second")

        assert export.__name__ == "second"

    def test_missing_attribute(self, plugin_dir):
        """Test a missing attribute."""
        write_plugin(plugin_dir, "lacking.py", "X = 1\n")
        resolver = ModuleResolver("", [plugin_dir])

        assert resolver.load("lacking:nope") is None
        assert resolver.tried[-1].endswith(":nope")

    def test_missing_module(self):
        """Test loading a missing module."""
        assert ModuleResolver().load("no_such_module_anywhere") is None

    def test_cache_hit_resets_tried(self, plugin_dir):
        """Test that a cached lookup does not report an earlier failure's locations."""
        write_plugin(plugin_dir, "cached.py", "X = 1\n")
        resolver = ModuleResolver("", [plugin_dir])
        resolver.resolve("cached")
        resolver.resolve("does-not-exist")

        assert resolver.load("cached:nope") is None
        assert resolver.tried == ["lws_plugin_cached:nope"]
