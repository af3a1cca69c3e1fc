from unittest.mock import patch

from asgiref.sync import async_to_sync
from channels.layers import InMemoryChannelLayer, get_channel_layer
from channels.routing import URLRouter
from channels.testing import WebsocketCommunicator
from django.test import SimpleTestCase, TestCase, override_settings
from firebase_admin import messaging

from drivers.models import Driver
from realtime import push
from realtime.notifications import (
	ALLOCATION_EVENT_MESSAGE_TYPE,
	ALLOCATION_STARTED,
	RealtimeChannel,
	company_room,
	driver_room,
)
from realtime.push import PushResult, push_to_driver, send_push_notification
from realtime.routing import websocket_urlpatterns


class BrokenLayer:
	async def group_send(self, group, message):
		raise ConnectionError('redis unavailable')


class RealtimeChannelTests(SimpleTestCase):
	def setUp(self):
		self.layer = InMemoryChannelLayer()
		self.channel_name = async_to_sync(self.layer.new_channel)()
		async_to_sync(self.layer.group_add)(company_room(12), self.channel_name)

	def test_room_names(self):
		self.assertEqual(company_room(12), 'company-12')
		self.assertEqual(driver_room(7), 'driver-7')

	def test_emit_reaches_room_members(self):
		channel = RealtimeChannel(channel_layer=self.layer)

		self.assertTrue(channel.to_company(12, ALLOCATION_STARTED, {'allocationId': 1, 'driverId': 7}))

		message = async_to_sync(self.layer.receive)(self.channel_name)
		self.assertEqual(message, {
			'type': ALLOCATION_EVENT_MESSAGE_TYPE,
			'event': ALLOCATION_STARTED,
			'payload': {'allocationId': 1, 'driverId': 7},
		})

	def test_layer_failure_is_reported_not_raised(self):
		channel = RealtimeChannel(channel_layer=BrokenLayer())

		self.assertFalse(channel.to_company(12, ALLOCATION_STARTED, {'allocationId': 1}))

	def test_event_without_driver_is_dropped(self):
		channel = RealtimeChannel(channel_layer=self.layer)

		self.assertFalse(channel.to_driver(None, ALLOCATION_STARTED, {'allocationId': 1}))


class AllocationEventsConsumerTests(SimpleTestCase):
	async def test_company_socket_receives_room_events(self):
		communicator = WebsocketCommunicator(URLRouter(websocket_urlpatterns), '/ws/company/5/allocations/')
		connected, _ = await communicator.connect()
		self.assertTrue(connected)

		greeting = await communicator.receive_json_from()
		self.assertEqual(greeting, {'type': 'connection_established', 'room': 'company-5'})

		await get_channel_layer().group_send('company-5', {
			'type': ALLOCATION_EVENT_MESSAGE_TYPE,
			'event': 'allocation-expired',
			'payload': {'allocationId': 3, 'message': 'Nenhum entregador aceitou a alocação'},
		})
		event = await communicator.receive_json_from()
		self.assertEqual(event, {
			'type': 'allocation-expired',
			'allocationId': 3,
			'message': 'Nenhum entregador aceitou a alocação',
		})

		await communicator.disconnect()

	async def test_ping_pong(self):
		communicator = WebsocketCommunicator(URLRouter(websocket_urlpatterns), '/ws/driver/9/allocations/')
		await communicator.connect()
		await communicator.receive_json_from()

		await communicator.send_json_to({'type': 'ping'})
		self.assertEqual(await communicator.receive_json_from(), {'type': 'pong'})

		await communicator.send_json_to({'type': 'accept'})
		reply = await communicator.receive_json_from()
		self.assertEqual(reply['type'], 'error')

		await communicator.disconnect()


class SendPushNotificationTests(SimpleTestCase):
	def setUp(self):
		push._firebase_app = None

	@override_settings(FIREBASE_CREDENTIALS_FILE='')
	def test_unconfigured_firebase_returns_none(self):
		self.assertIsNone(send_push_notification('token-1', 'Title', 'Body'))

	def test_successful_send(self):
		with patch('realtime.push.get_firebase_app', return_value=object()), \
			patch('realtime.push.messaging.send', return_value='projects/p/messages/1') as mock_send:
			result = send_push_notification('token-1', 'Alocação Iniciada!', 'Body', {'allocationId': 4})

		self.assertTrue(result.success)
		self.assertEqual(result.message_id, 'projects/p/messages/1')

		message = mock_send.call_args[0][0]
		self.assertEqual(message.token, 'token-1')
		self.assertEqual(message.data, {'allocationId': '4'})
		self.assertEqual(message.android.priority, 'high')
		self.assertEqual(message.android.notification.channel_id, 'delivery_channel')

	def test_unregistered_token_is_flagged(self):
		with patch('realtime.push.get_firebase_app', return_value=object()), \
			patch('realtime.push.messaging.send', side_effect=messaging.UnregisteredError('gone')):
			result = send_push_notification('token-1', 'Title', 'Body')

		self.assertEqual(result, PushResult(token_invalid=True))

	def test_other_failures_return_none(self):
		with patch('realtime.push.get_firebase_app', return_value=object()), \
			patch('realtime.push.messaging.send', side_effect=RuntimeError('network')):
			self.assertIsNone(send_push_notification('token-1', 'Title', 'Body'))


class PushToDriverTests(TestCase):
	def setUp(self):
		self.driver = Driver.objects.create(name='Joao', fcm_token='token-joao')

	def test_rejected_token_is_cleared(self):
		delivered = push_to_driver(self.driver, 'Title', 'Body', sender=lambda *args: PushResult(token_invalid=True))

		self.assertFalse(delivered)
		self.driver.refresh_from_db()
		self.assertIsNone(self.driver.fcm_token)

	def test_driver_without_token_is_skipped(self):
		calls = []
		self.driver.fcm_token = None

		self.assertFalse(push_to_driver(self.driver, 'Title', 'Body', sender=lambda *args: calls.append(args)))
		self.assertEqual(calls, [])

	def test_delivered(self):
		result = push_to_driver(self.driver, 'Title', 'Body', sender=lambda *args: PushResult(message_id='m-1'))

		self.assertTrue(result)
