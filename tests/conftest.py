from types import SimpleNamespace

import pytest

from vminventory import inventory

GOVMOMI_VARS = (
    "GOVMOMI_URL",
    "GOVMOMI_USERNAME",
    "GOVMOMI_PASSWORD",
    "GOVMOMI_INSECURE",
    "GOVMOMI_PERSIST_SESSION",
    "GOVMOMI_HOME",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in GOVMOMI_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("GOVMOMI_HOME", str(tmp_path / "govmomi"))


def managed_object(wsdl_name, mo_id):
    return SimpleNamespace(_wsdlName=wsdl_name, _moId=mo_id)


def object_content(obj, prop, value):
    return SimpleNamespace(obj=obj, propSet=[SimpleNamespace(name=prop, val=value)], missingSet=[])


def page(objects, token=None):
    return SimpleNamespace(objects=objects, token=token)


class FakeView:
    def __init__(self, types):
        self.types = types
        self.destroyed = False

    def Destroy(self):
        self.destroyed = True


class FakeViewManager:
    def __init__(self, fail=None):
        self.views = []
        self.fail = fail

    def CreateContainerView(self, container, type, recursive):
        if self.fail is not None:
            raise self.fail
        view = FakeView(type)
        self.views.append((container, recursive, view))
        return view


class FakePropertyCollector:
    """Serves pages per vim type; a type mapped to an exception raises it."""

    def __init__(self, pages):
        self.pages = {k: list(v) if isinstance(v, list) else v for k, v in pages.items()}
        self.requested = []
        self._pending = []

    def RetrievePropertiesEx(self, specSet, options):
        spec = specSet[0]
        self.requested.append(spec.vim_type)
        pages = self.pages.get(spec.vim_type, [])
        if isinstance(pages, Exception):
            raise pages
        if not pages:
            return None
        self._pending = list(pages[1:])
        return pages[0]

    def ContinueRetrievePropertiesEx(self, token):
        return self._pending.pop(0)


@pytest.fixture
def fake_si(monkeypatch):
    """Builds a ServiceInstance stand-in whose property collector serves the given pages."""
    # the fake collector keys on the KindSpec; the real spec is covered in test_inventory
    monkeypatch.setattr(inventory, "_filter_spec", lambda view, spec: spec)

    def build(pages, view_fail=None):
        content = SimpleNamespace(
            rootFolder=managed_object("Folder", "group-d1"),
            viewManager=FakeViewManager(fail=view_fail),
            propertyCollector=FakePropertyCollector(pages),
        )
        return SimpleNamespace(RetrieveContent=lambda: content, content=content)

    return build
