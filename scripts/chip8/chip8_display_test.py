import os
import unittest

os.environ.setdefault("SDL_VIDEODRIVER", "dummy")
os.environ["PYGAME_HIDE_SUPPORT_PROMPT"] = "no welcome message"
import pygame

from chip8 import DisplayBuffer, KeyBuffer
from chip8_display import BLUE, LIGHT_BLUE, Screen, handle_event, run_display


def read_pixel(screen, x, y):
    """return 1 if pixel is ON, return 0 if pixel is OFF"""
    p = screen.surface.get_at((x * screen.scale, y * screen.scale))
    return 0 if p == screen.background else 1


class TestScreen(unittest.TestCase):
    def setUp(self):
        self.screen = Screen(s=2, surface=pygame.Surface((64 * 2, 32 * 2)))

    def test_render(self):
        vram = DisplayBuffer()
        with vram as buf:
            buf.rows[3][5] = 1
            buf.rows[31][63] = 1
        self.screen.render(vram.snapshot())
        self.assertEqual(read_pixel(self.screen, 5, 3), 1)
        self.assertEqual(read_pixel(self.screen, 63, 31), 1)
        self.assertEqual(read_pixel(self.screen, 4, 3), 0)
        self.assertEqual(self.screen.surface.get_at((11, 7)), LIGHT_BLUE)
        self.assertEqual(self.screen.surface.get_at((12, 7)), BLUE)

    def test_render_clears_previous_frame(self):
        self.screen.render([bytes([1]) * 64] * 32)
        self.screen.render([bytes(64)] * 32)
        self.assertEqual(read_pixel(self.screen, 0, 0), 0)


class TestEvents(unittest.TestCase):
    def test_press_and_release(self):
        keypad = KeyBuffer()
        self.assertTrue(handle_event(pygame.event.Event(pygame.KEYDOWN, key=pygame.K_a), keypad))
        self.assertTrue(keypad.is_pressed(0xA))
        self.assertTrue(handle_event(pygame.event.Event(pygame.KEYUP, key=pygame.K_a), keypad))
        self.assertFalse(keypad.is_pressed(0xA))

    def test_unmapped_key_is_ignored(self):
        keypad = KeyBuffer()
        self.assertTrue(handle_event(pygame.event.Event(pygame.KEYDOWN, key=pygame.K_z), keypad))
        self.assertEqual(keypad.snapshot(), bytes(16))

    def test_quit(self):
        keypad = KeyBuffer()
        self.assertFalse(handle_event(pygame.event.Event(pygame.QUIT), keypad))
        self.assertFalse(handle_event(pygame.event.Event(pygame.KEYDOWN, key=pygame.K_ESCAPE), keypad))


class TestDisplayLoop(unittest.TestCase):
    def setUp(self):
        pygame.display.init()

    def tearDown(self):
        pygame.display.quit()

    def test_loop_ends_on_quit(self):
        vram, keypad = DisplayBuffer(), KeyBuffer()
        with vram as buf:
            buf.rows[0][0] = 1
        screen = Screen(s=1)
        pygame.event.post(pygame.event.Event(pygame.KEYDOWN, key=pygame.K_7))
        pygame.event.post(pygame.event.Event(pygame.QUIT))
        run_display(screen, vram, keypad, 60)
        self.assertTrue(keypad.is_pressed(7))
        self.assertEqual(read_pixel(screen, 0, 0), 1)


if __name__ == "__main__":
    unittest.main()
