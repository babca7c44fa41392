"""
Falcões WebSocket Tests
=======================

JWT query-string auth, the courier offer channel and ride tracking.
Database work runs through database_sync_to_async, so these use
TransactionTestCase.
"""

from asgiref.sync import async_to_sync, sync_to_async
from channels.routing import URLRouter
from channels.testing import WebsocketCommunicator
from django.test import TransactionTestCase
from rest_framework_simplejwt.tokens import AccessToken

from logistics.events import broadcast_ride_status, notify_ride_offer
from logistics.middleware import JWTQueryStringAuthMiddleware
from logistics.models import RideExposure, RideStatus
from logistics.routing import websocket_urlpatterns

from .factories import expose, make_admin, make_assigned_ride, make_client, make_courier, make_ride


def token_for(user) -> str:
    return str(AccessToken.for_user(user))


class RealtimeTestCase(TransactionTestCase):

    def setUp(self):
        self.application = JWTQueryStringAuthMiddleware(URLRouter(websocket_urlpatterns))
        self.client_user = make_client()
        self.courier = make_courier()

    def communicator(self, path, user=None):
        if user is not None:
            path = f'{path}?token={token_for(user)}'
        return WebsocketCommunicator(self.application, path)


class TestCourierConsumer(RealtimeTestCase):

    def test_courier_receives_offer(self):
        ride = make_ride(self.client_user)
        exposure = RideExposure.objects.select_related('ride').get(pk=expose(ride, self.courier).pk)

        async def scenario():
            communicator = self.communicator('/ws/courier/', self.courier)
            connected, _ = await communicator.connect()
            self.assertTrue(connected)

            hello = await communicator.receive_json_from()
            self.assertEqual(hello['type'], 'connection_established')
            self.assertEqual(hello['courier_id'], str(self.courier.pk))

            await sync_to_async(notify_ride_offer)(exposure)
            offer = await communicator.receive_json_from()
            self.assertEqual(offer['type'], 'ride_offer')
            self.assertEqual(offer['ride_id'], str(ride.id))
            self.assertEqual(offer['price'], '20.00')

            await communicator.send_json_to({'type': 'ping'})
            self.assertEqual(await communicator.receive_json_from(), {'type': 'pong'})

            await communicator.disconnect()

        async_to_sync(scenario)()

    def test_anonymous_rejected(self):
        async def scenario():
            connected, code = await self.communicator('/ws/courier/').connect()
            self.assertFalse(connected)
            self.assertEqual(code, 4003)

        async_to_sync(scenario)()

    def test_invalid_token_rejected(self):
        async def scenario():
            communicator = WebsocketCommunicator(self.application, '/ws/courier/?token=not-a-jwt')
            connected, code = await communicator.connect()
            self.assertFalse(connected)
            self.assertEqual(code, 4003)

        async_to_sync(scenario)()

    def test_client_rejected(self):
        async def scenario():
            connected, code = await self.communicator('/ws/courier/', self.client_user).connect()
            self.assertFalse(connected)
            self.assertEqual(code, 4003)

        async_to_sync(scenario)()

    def test_unapproved_courier_rejected(self):
        pending = make_courier(is_approved=False)

        async def scenario():
            connected, _ = await self.communicator('/ws/courier/', pending).connect()
            self.assertFalse(connected)

        async_to_sync(scenario)()


class TestRideTrackingConsumer(RealtimeTestCase):

    def setUp(self):
        super().setUp()
        self.ride = make_assigned_ride(self.client_user, self.courier)
        self.path = f'/ws/rides/{self.ride.id}/'

    def test_client_follows_status(self):
        async def scenario():
            communicator = self.communicator(self.path, self.client_user)
            connected, _ = await communicator.connect()
            self.assertTrue(connected)

            hello = await communicator.receive_json_from()
            self.assertEqual(hello['status'], RideStatus.AWAITING_PAYMENT)

            await sync_to_async(broadcast_ride_status)(self.ride.id, RideStatus.RELEASED, 'Pagamento confirmado')
            update = await communicator.receive_json_from()
            self.assertEqual(update['type'], 'status_update')
            self.assertEqual(update['status'], RideStatus.RELEASED)
            self.assertEqual(update['message'], 'Pagamento confirmado')

            await communicator.disconnect()

        async_to_sync(scenario)()

    def test_courier_and_admin_may_follow(self):
        admin = make_admin()

        async def scenario():
            for user in (self.courier, admin):
                communicator = self.communicator(self.path, user)
                connected, _ = await communicator.connect()
                self.assertTrue(connected)
                await communicator.disconnect()

        async_to_sync(scenario)()

    def test_stranger_rejected(self):
        stranger = make_client()

        async def scenario():
            connected, code = await self.communicator(self.path, stranger).connect()
            self.assertFalse(connected)
            self.assertEqual(code, 4004)

        async_to_sync(scenario)()

    def test_unknown_ride_rejected(self):
        async def scenario():
            communicator = self.communicator('/ws/rides/00000000-0000-0000-0000-000000000000/', self.client_user)
            connected, _ = await communicator.connect()
            self.assertFalse(connected)

        async_to_sync(scenario)()
