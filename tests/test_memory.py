import pytest

from stackboot.errors import ResourceApiError
from stackboot.memory import InMemoryResourceClient
from stackboot.protocols import ResourceClient
from stackboot.types import BootConfigOptions, InstanceStatus

pytestmark = [pytest.mark.unit]


async def _status(client: InMemoryResourceClient, instance_id: int) -> InstanceStatus:
    (info,) = await client.list_instances(instance_id)
    return info.status


class TestInMemoryResourceClient:
    def test_satisfies_protocol(self):
        assert isinstance(InMemoryResourceClient(), ResourceClient)

    async def test_status_progression(self):
        client = InMemoryResourceClient(brand_new_after=2, running_after=1)
        instance_id = await client.create_instance(3, 1)

        assert await _status(client, instance_id) is InstanceStatus.BEING_CREATED
        assert await _status(client, instance_id) is InstanceStatus.BEING_CREATED
        assert await _status(client, instance_id) is InstanceStatus.BRAND_NEW

        root = await client.create_disk(instance_id, "ext4", "root", 1024)
        swap = await client.create_disk(instance_id, "swap", "swap-disk", 512)
        config_id = await client.create_boot_config(
            instance_id, 138, "c1", BootConfigOptions(1, (root, swap))
        )
        await client.boot(instance_id, config_id)

        assert await _status(client, instance_id) is InstanceStatus.BRAND_NEW
        assert await _status(client, instance_id) is InstanceStatus.RUNNING

    async def test_unknown_instance_lists_nothing(self):
        assert await InMemoryResourceClient().list_instances(42) == []

    async def test_private_address_attached_once(self):
        client = InMemoryResourceClient()
        instance_id = await client.create_instance(3, 1)
        await client.attach_private_address(instance_id)

        addresses = await client.list_addresses(instance_id)
        assert [a.is_public for a in addresses] == [True, False]
        with pytest.raises(ResourceApiError, match="already attached"):
            await client.attach_private_address(instance_id)

    async def test_boot_config_rejects_foreign_disk(self):
        client = InMemoryResourceClient(public_ips=["203.0.113.7", "203.0.113.8"])
        first = await client.create_instance(3, 1)
        second = await client.create_instance(3, 1)
        disk = await client.create_disk(first, "swap", "swap-disk", 512)

        with pytest.raises(ResourceApiError) as exc_info:
            await client.create_boot_config(second, 138, "c1", BootConfigOptions(1, (disk,)))
        assert exc_info.value.status == 404

    async def test_fail_on_injects_error(self):
        client = InMemoryResourceClient(fail_on={"create_instance"})
        with pytest.raises(ResourceApiError, match="injected"):
            await client.create_instance(3, 1)
        assert client.instances == {}
