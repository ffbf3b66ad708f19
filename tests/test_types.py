import pytest

from stackboot.catalog import LINODE_PLANS, StaticCatalog
from stackboot.errors import InvalidSpecError, StateConflictError, UnknownMachineTypeError
from stackboot.types import (
    BootConfigOptions,
    InstanceInfo,
    InstanceSpec,
    InstanceStatus,
    MachineType,
    ProvisioningState,
    Stage,
)

pytestmark = [pytest.mark.unit]


def make_spec(**overrides) -> InstanceSpec:
    fields = {
        "cluster": "c1",
        "zone": "3",
        "sku": "1",
        "kernel_id": 138,
        "image_id": 146,
        "root_password": "s3cret",
    }
    fields.update(overrides)
    return InstanceSpec(**fields)


class TestInstanceSpec:
    def test_ids_parse(self):
        spec = make_spec()
        spec.validate()
        assert spec.zone_id == 3
        assert spec.plan_id == 1

    @pytest.mark.parametrize(
        ("overrides", "match"),
        [
            ({"zone": "abc"}, "zone"),
            ({"zone": "0"}, "zone"),
            ({"sku": ""}, "sku"),
            ({"sku": "-4"}, "sku"),
            ({"cluster": ""}, "cluster"),
            ({"root_password": ""}, "password"),
            ({"kernel_id": -1}, "kernel"),
        ],
    )
    def test_invalid_fields(self, overrides, match):
        with pytest.raises(InvalidSpecError, match=match):
            make_spec(**overrides).validate()

    def test_repr_hides_password(self):
        assert "s3cret" not in repr(make_spec())

    def test_is_immutable(self):
        spec = make_spec()
        with pytest.raises(AttributeError):
            spec.cluster = "other"  # type: ignore[misc]


class TestInstanceStatus:
    def test_known_codes(self):
        assert InstanceStatus.from_code(-1) is InstanceStatus.BEING_CREATED
        assert InstanceStatus.from_code(0) is InstanceStatus.BRAND_NEW
        assert InstanceStatus.from_code(1) is InstanceStatus.RUNNING
        assert InstanceStatus.from_code(2) is InstanceStatus.POWERED_OFF

    def test_unrecognized_code(self):
        assert InstanceStatus.from_code(7) is InstanceStatus.UNKNOWN
        assert InstanceStatus.from_code(None) is InstanceStatus.UNKNOWN

    def test_labels(self):
        assert str(InstanceStatus.BEING_CREATED) == "Being Created"
        assert str(InstanceStatus.POWERED_OFF) == "Powered Off"

    def test_status_text_keeps_unrecognized_code(self):
        info = InstanceInfo(id=1, status=InstanceStatus.from_code(7), code=7)
        assert info.status_text == "Unknown (7)"

    def test_status_text_for_known_status(self):
        info = InstanceInfo(id=1, status=InstanceStatus.RUNNING, code=1)
        assert info.status_text == "Running"


class TestProvisioningState:
    def test_starts_empty(self):
        state = ProvisioningState()
        assert state.stage is Stage.PENDING
        assert not state.is_complete
        assert "instance_id" in state.missing

    def test_set_once(self):
        state = ProvisioningState()
        state.instance_id = 10
        state.instance_id = 10
        with pytest.raises(StateConflictError) as exc_info:
            state.instance_id = 11
        assert exc_info.value.field == "instance_id"
        assert state.instance_id == 10

    def test_status_and_stage_are_overwritable(self):
        state = ProvisioningState()
        state.status = InstanceStatus.BRAND_NEW
        state.status = InstanceStatus.RUNNING
        state.stage = Stage.CREATED
        state.stage = Stage.BOOTED
        assert state.status is InstanceStatus.RUNNING

    def test_complete(self):
        state = ProvisioningState(
            instance_id=1,
            public_ip="203.0.113.7",
            private_ip="192.168.128.2",
            root_disk_id=2,
            swap_disk_id=3,
            boot_config_id=4,
        )
        assert state.is_complete
        assert state.missing == ()

    def test_dict_round_trip(self):
        state = ProvisioningState(instance_id=1, public_ip="203.0.113.7")
        state.status = InstanceStatus.BRAND_NEW
        state.stage = Stage.CONVERGED_BRAND_NEW

        data = state.to_dict()
        assert data["status"] == "BRAND_NEW"
        assert data["stage"] == "converged_brand_new"
        assert ProvisioningState.from_dict(data) == state

    def test_from_dict_rejects_unknown_fields(self):
        with pytest.raises(ValueError, match="bogus"):
            ProvisioningState.from_dict({"bogus": 1})


class TestBootConfigOptions:
    def test_disk_list_param(self):
        assert BootConfigOptions(1, (10, 11)).disk_list_param == "10,11"


class TestStaticCatalog:
    def test_default_has_linode_plans(self):
        catalog = StaticCatalog.default()
        assert len(catalog) == len(LINODE_PLANS)
        assert catalog.machine_type("linode", "1").disk_gb == 20

    def test_unknown_sku(self):
        catalog = StaticCatalog.from_plans("linode", [MachineType("1", 20, 1024)])
        with pytest.raises(UnknownMachineTypeError) as exc_info:
            catalog.machine_type("linode", "99")
        assert isinstance(exc_info.value, LookupError)
        assert exc_info.value.sku == "99"

    def test_provider_is_part_of_key(self):
        catalog = StaticCatalog.from_plans("linode", [MachineType("1", 20, 1024)])
        with pytest.raises(UnknownMachineTypeError):
            catalog.machine_type("digitalocean", "1")
