import os
import tempfile
import unittest

from db_case import DatabaseTestCase

from db import catalog
from utils import media


class MediaTestCase(DatabaseTestCase):
    def setUp(self):
        super().setUp()
        self.media_dir = tempfile.TemporaryDirectory()
        self._old_media_dir = media.MEDIA_DIR
        media.MEDIA_DIR = self.media_dir.name

    def tearDown(self):
        media.MEDIA_DIR = self._old_media_dir
        self.media_dir.cleanup()
        super().tearDown()

    def touch(self, name):
        path = os.path.join(self.media_dir.name, name)
        with open(path, "wb") as f:
            f.write(b"video")
        return path

    def test_local_media_file(self):
        self.assertEqual(
            media.local_media_file("/uploads/clip.mp4"),
            os.path.join(self.media_dir.name, "clip.mp4"),
        )
        self.assertEqual(
            media.local_media_file("/uploads/../../etc/passwd"),
            os.path.join(self.media_dir.name, "passwd"),
        )
        for value in (None, "", "https://youtube.com/watch?v=1", "/uploads/"):
            self.assertIsNone(media.local_media_file(value))

    async def test_delete_class_removes_its_video(self):
        path = self.touch("a.mp4")
        record = await self.make_class(class_video="/uploads/a.mp4")

        await catalog.delete_class(record.id)
        await media.drain()

        self.assertFalse(os.path.exists(path))

    async def test_replacing_video_removes_the_old_file(self):
        old = self.touch("old.mp4")
        new = self.touch("new.mp4")
        record = await self.make_class(class_video="/uploads/old.mp4")

        await catalog.update_class(record.id, {"class_video": "/uploads/new.mp4"})
        await media.drain()

        self.assertFalse(os.path.exists(old))
        self.assertTrue(os.path.exists(new))

    async def test_external_video_and_missing_file_are_ignored(self):
        record = await self.make_class(class_video="https://example.com/v.mp4")
        other = await self.make_class(class_video="/uploads/never-existed.mp4")

        await catalog.delete_class(record.id)
        await catalog.delete_class(other.id)
        await media.drain()

    async def test_delete_all_removes_every_video(self):
        paths = [self.touch(f"{n}.mp4") for n in range(3)]
        for n in range(3):
            await self.make_class(class_video=f"/uploads/{n}.mp4")

        await catalog.delete_all_classes()
        await media.drain()

        self.assertFalse(any(os.path.exists(p) for p in paths))


class ScheduleWithoutLoopTestCase(unittest.TestCase):
    def test_removes_synchronously_outside_a_loop(self):
        with tempfile.TemporaryDirectory() as tmp:
            old_dir, media.MEDIA_DIR = media.MEDIA_DIR, tmp
            try:
                path = os.path.join(tmp, "clip.mp4")
                open(path, "wb").close()
                media.schedule_delete(["/uploads/clip.mp4", None])
                self.assertFalse(os.path.exists(path))
            finally:
                media.MEDIA_DIR = old_dir
