"""
WebSocket consumers for real-time document updates.

Clients connect to ws://host/ws/inventory/ and receive a message whenever a
movement document changes status, so kanban boards and stock screens can
refresh without polling.
"""
import json
import logging

from channels.generic.websocket import AsyncWebsocketConsumer

logger = logging.getLogger(__name__)

INVENTORY_GROUP = 'inventory'


class InventoryConsumer(AsyncWebsocketConsumer):
    """
    WebSocket consumer for movement document updates.

    Messages sent to clients:
    {
        "type": "document.updated",
        "document": {...serialized document data...}
    }
    """

    async def connect(self):
        """
        Called when WebSocket connection is established.
        Add this connection to the 'inventory' group.
        """
        self.group_name = INVENTORY_GROUP

        if self.channel_layer:
            await self.channel_layer.group_add(
                self.group_name,
                self.channel_name
            )
        else:
            logger.warning("Channel layer is None, WebSocket will connect but receive no updates")

        await self.accept()

    async def disconnect(self, close_code):
        """
        Called when WebSocket connection is closed.
        Remove this connection from the 'inventory' group.
        """
        if self.channel_layer and hasattr(self, 'group_name'):
            await self.channel_layer.group_discard(
                self.group_name,
                self.channel_name
            )

    async def receive(self, text_data=None, bytes_data=None):
        """Broadcast-only channel; client messages are ignored."""
        pass

    async def document_updated(self, event):
        """
        Handler for 'document.updated' events sent to the group.
        Forwards the document data to the WebSocket client.
        """
        await self.send(text_data=json.dumps({
            'type': 'document.updated',
            'document': event['document']
        }))
