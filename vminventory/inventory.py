import enum
import logging
from dataclasses import dataclass

from pyVmomi import vim, vmodl

from vminventory.errors import FetchError, UnknownKindError

logger = logging.getLogger(__name__)


class ObjectKind(enum.Enum):
    VIRTUAL_MACHINE = "VirtualMachine"
    DATASTORE = "Datastore"
    NETWORK = "Network"


@dataclass(frozen=True)
class KindSpec:
    vim_type: type
    name_property: str


# Adding a kind only needs an entry here.
KIND_SPECS = {
    ObjectKind.VIRTUAL_MACHINE: KindSpec(vim.VirtualMachine, "summary.config.name"),
    ObjectKind.DATASTORE: KindSpec(vim.Datastore, "summary.name"),
    ObjectKind.NETWORK: KindSpec(vim.Network, "name"),
}

ALL_KINDS = (ObjectKind.DATASTORE, ObjectKind.VIRTUAL_MACHINE, ObjectKind.NETWORK)


@dataclass(frozen=True)
class InventoryRecord:
    kind: ObjectKind
    name: str
    identifier: str


def as_kind(value):
    """Coerce an ObjectKind or its vSphere type name; anything else is a contract violation."""
    try:
        return ObjectKind(value)
    except ValueError:
        raise UnknownKindError(value) from None


def reference(obj):
    """Managed object reference as Type:value, e.g. VirtualMachine:vm-42."""
    return f"{obj._wsdlName}:{obj._moId}"


# --- Property collector ---
def _filter_spec(view, spec):
    obj_spec = vmodl.query.PropertyCollector.ObjectSpec(
        obj=view, skip=True,
        selectSet=[
            vmodl.query.PropertyCollector.TraversalSpec(
                name="traverseView", path="view", skip=False, type=vim.view.ContainerView
            )
        ]
    )
    prop_spec = vmodl.query.PropertyCollector.PropertySpec(
        type=spec.vim_type, all=False, pathSet=[spec.name_property]
    )
    return vmodl.query.PropertyCollector.FilterSpec(objectSet=[obj_spec], propSet=[prop_spec])


def collect_records(content, view, kind):
    """Retrieve the name of every object of one kind in view, following continuation tokens."""
    spec = KIND_SPECS[kind]
    collector = content.propertyCollector
    records = []

    result = collector.RetrievePropertiesEx(
        specSet=[_filter_spec(view, spec)], options=vmodl.query.PropertyCollector.RetrieveOptions()
    )
    while result:
        for o in result.objects:
            name = ""
            for p in o.propSet:
                if p.name == spec.name_property:
                    name = p.val
            for missing in getattr(o, "missingSet", None) or []:
                logger.debug(f"Property {missing.path} missing for {o.obj}: {missing.fault}")
            records.append(InventoryRecord(kind=kind, name=name, identifier=reference(o.obj)))

        token = getattr(result, "token", None)
        if not token:
            break
        result = collector.ContinueRetrievePropertiesEx(token=token)

    return records


def _destroy(view):
    try:
        view.Destroy()
        logger.debug("Destroyed container view")
    except Exception as e:
        logger.warning(f"Could not destroy container view: {e}")


# --- Inventory ---
def fetch_inventory(si, kinds):
    """
    Retrieve the requested kinds through one recursive container view.

    Returns a dict mapping each ObjectKind to its records in retrieval order.
    The first failing kind raises FetchError and nothing is returned; the view
    is destroyed either way.
    """
    kinds = [as_kind(k) for k in kinds]
    if not kinds:
        raise FetchError(None, "no object kinds requested")
    kinds = list(dict.fromkeys(kinds))

    try:
        content = si.RetrieveContent()
        view = content.viewManager.CreateContainerView(
            content.rootFolder, [KIND_SPECS[k].vim_type for k in kinds], True
        )
    except Exception as e:
        raise FetchError(None, e) from e
    logger.debug(f"Created container view for {', '.join(k.value for k in kinds)}")

    inventory = {}
    try:
        for kind in kinds:
            try:
                inventory[kind] = collect_records(content, view, kind)
            except Exception as e:
                raise FetchError(kind, e) from e
            logger.info(f"Retrieved {len(inventory[kind])} {kind.value} object(s)")
    finally:
        _destroy(view)

    return inventory
