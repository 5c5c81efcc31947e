"""
Tests for the inventory WebSocket consumer.
"""

from channels.layers import get_channel_layer
from channels.routing import URLRouter
from channels.testing import WebsocketCommunicator
from django.test import SimpleTestCase, override_settings

from inventory.consumers import INVENTORY_GROUP
from inventory.routing import websocket_urlpatterns


@override_settings(CHANNEL_LAYERS={'default': {'BACKEND': 'channels.layers.InMemoryChannelLayer'}})
class InventoryConsumerTest(SimpleTestCase):
    """Test cases for InventoryConsumer."""

    databases = {'default'}

    def _communicator(self):
        return WebsocketCommunicator(URLRouter(websocket_urlpatterns), '/ws/inventory/')

    async def test_receives_document_updates(self):
        communicator = self._communicator()
        connected, _ = await communicator.connect()
        self.assertTrue(connected)

        await get_channel_layer().group_send(INVENTORY_GROUP, {
            'type': 'document.updated',
            'document': {'id': 1, 'reference': 'WH/OUT/0001', 'status': 'ready'},
        })

        message = await communicator.receive_json_from()
        self.assertEqual(message['type'], 'document.updated')
        self.assertEqual(message['document']['reference'], 'WH/OUT/0001')

        await communicator.disconnect()

    async def test_client_messages_are_ignored(self):
        communicator = self._communicator()
        await communicator.connect()

        await communicator.send_json_to({'type': 'ping'})
        self.assertTrue(await communicator.receive_nothing())

        await communicator.disconnect()

    async def test_disconnect_leaves_group(self):
        communicator = self._communicator()
        await communicator.connect()
        layer = get_channel_layer()
        self.assertEqual(len(layer.groups.get(INVENTORY_GROUP, {})), 1)

        await communicator.disconnect()

        self.assertEqual(len(layer.groups.get(INVENTORY_GROUP, {})), 0)
