import asyncio
import unittest

from deferpy.channel import Channel


class TestChannel(unittest.IsolatedAsyncioTestCase):
    async def test_send_receive(self):
        ch: Channel[int] = Channel(maxsize=1)
        await ch.send(5)
        v = await ch.receive()
        self.assertEqual(v, 5)

    async def test_offer_never_blocks(self):
        ch: Channel[int] = Channel(maxsize=1)
        self.assertTrue(ch.offer(1))
        self.assertFalse(ch.offer(2))
        self.assertEqual(await ch.receive(), 1)

    async def test_receive_waits_for_sender(self):
        ch: Channel[str] = Channel(maxsize=1)
        async def later():
            await asyncio.sleep(0)
            await ch.send("ping")
        t = asyncio.create_task(later())
        self.assertEqual(await ch.receive(), "ping")
        await t
