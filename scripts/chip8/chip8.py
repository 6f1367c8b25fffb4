# CHIP-8 INFO
# https://chip-8.github.io/extensions/#chip-8
# https://chip-8.github.io/links/
#
# COWGOD'S TECHNICAL REFERENCE
# http://devernay.free.fr/hacks/chip8/C8TECH10.HTM
#
# TEST SUITE
# https://github.com/Timendus/chip8-test-suite
#
# The CPU, the 60Hz timers and the pygame window run as three independent loops.
# They only talk through the display buffer, the keypad buffer and the two timer
# cells, each one guarded by its own lock.


import argparse
import logging
import random
import sys
import threading
from functools import wraps

import os
os.environ["PYGAME_HIDE_SUPPORT_PROMPT"] = "no welcome message"   # this env var disable pygame's welcome message when imported
import pygame

from chip8_display import SCALE, SCREEN_HEIGHT, SCREEN_WIDTH, Screen, run_display
from chip8_timers import Beeper, start_timers


# ******************** STATIC SECTION
C8_FONTS = [0xF0, 0x90, 0x90, 0x90, 0xF0,  # 0
            0x20, 0x60, 0x20, 0x20, 0x70,  # 1
            0xF0, 0x10, 0xF0, 0x80, 0xF0,  # 2
            0xF0, 0x10, 0xF0, 0x10, 0xF0,  # 3
            0x90, 0x90, 0xF0, 0x10, 0x10,  # 4
            0xF0, 0x80, 0xF0, 0x10, 0xF0,  # 5
            0xF0, 0x80, 0xF0, 0x90, 0xF0,  # 6
            0xF0, 0x10, 0x20, 0x40, 0x40,  # 7
            0xF0, 0x90, 0xF0, 0x90, 0xF0,  # 8
            0xF0, 0x90, 0xF0, 0x10, 0xF0,  # 9
            0xF0, 0x90, 0xF0, 0x90, 0x90,  # A
            0xE0, 0x90, 0xE0, 0x90, 0xE0,  # B
            0xF0, 0x80, 0x80, 0x80, 0xF0,  # C
            0xE0, 0x90, 0x90, 0x90, 0xE0,  # D
            0xF0, 0x80, 0xF0, 0x80, 0xF0,  # E
            0xF0, 0x80, 0xF0, 0x80, 0x80]  # F

MEMORY_SIZE = 4096
ADDRESS_MASK = 0x0FFF
FONT_START_ADDRESS = 0x50
FONT_BYTES_PER_CHAR = 5
ROM_START_ADDRESS = 0x200
MAX_ROM_SIZE = MEMORY_SIZE - ROM_START_ADDRESS
STACK_DEPTH = 16
N_REGISTERS = 16
N_KEYS = 16
CPU_HZ = 700
REFRESH_HZ = 60
DEBUG = True if int(os.getenv('DEBUG', 0)) >= 1 else False

log = logging.getLogger("chip8")


# ******************** ERRORS SECTION
class Chip8Error(Exception):
    """base class for every condition raised by the emulator"""


class StackOverflow(Chip8Error, IndexError):
    pass


class StackUnderflow(Chip8Error, IndexError):
    pass


class ImageTooLarge(Chip8Error, ValueError):
    pass


class UnhandledInstruction(Chip8Error):
    def __init__(self, opcode, address):
        super().__init__(f"unhandled instruction 0x{opcode:04x} at 0x{address:04x}")
        self.opcode = opcode
        self.address = address


# ******************** UTILITIES SECTION
def asm(msg):
    """decorator to log the ASM of the instruction being called"""
    def decorator(fn):
        @wraps(fn)
        def wrapper_fn(*args, **kwargs):
            mem_addr = args[0].pc - 2   # args[0] equals self of the decorated method, pc already points to the next instruction
            vals = fn(*args, **kwargs)  # use the locals() values of each decorated function in the message
            if log.isEnabledFor(logging.DEBUG):
                vals['mem_addr'] = mem_addr
                log.debug(msg.format(**vals))
        return wrapper_fn
    return decorator

def positive_int(value):
    number = int(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f"{value} is not a positive integer")
    return number

def get_args(argv=None):
    parser = argparse.ArgumentParser(description="CHIP-8 emulator")
    parser.add_argument("-f", "--file", required=True, help="input rom file")
    parser.add_argument("--cpu-hz", type=positive_int, default=CPU_HZ, help="instructions executed per second")
    parser.add_argument("--fps", type=positive_int, default=REFRESH_HZ, help="display refresh rate")
    parser.add_argument("-s", "--scale", type=positive_int, default=SCALE, help="size in pixels of a single CHIP-8 pixel")
    return parser.parse_args(argv)

def read_rom(path):
    with open(path, mode='rb') as f:
        return f.read()


# ******************** SHARED STATE SECTION
# ********** STATE LENT OUT TO THE DISPLAY AND TIMER LOOPS, EVERY ACCESS HOLDS ONE LOCK FOR ONE READ OR WRITE
class Shared:
    def __init__(self):
        self._lock = threading.Lock()

    def __enter__(self):
        self._lock.acquire()
        return self

    def __exit__(self, *exc):
        self._lock.release()
        return False


class DisplayBuffer(Shared):
    """32 rows of 64 pixels, 1 is ON and 0 is OFF"""
    def __init__(self, w=SCREEN_WIDTH, h=SCREEN_HEIGHT):
        super().__init__()
        self.w, self.h = w, h
        self.rows = [bytearray(w) for _ in range(h)]

    def clear(self):
        with self._lock:
            for row in self.rows:
                row[:] = bytes(self.w)

    def snapshot(self):
        """copy of the whole grid, taken while holding the lock"""
        with self._lock:
            return [bytes(row) for row in self.rows]


class KeyBuffer(Shared):
    """state of the 16 logical keys, 1 is down and 0 is up"""
    def __init__(self, n=N_KEYS):
        super().__init__()
        self.keys = bytearray(n)

    def press(self, key):
        with self._lock:
            self.keys[key] = 1

    def release(self, key):
        with self._lock:
            self.keys[key] = 0

    def is_pressed(self, key):
        with self._lock:
            return self.keys[key] == 1

    def first_pressed(self):
        """lowest index of a key currently down, None when no key is down"""
        with self._lock:
            for key, state in enumerate(self.keys):
                if state:
                    return key
        return None

    def snapshot(self):
        with self._lock:
            return bytes(self.keys)


class Timer(Shared):
    """8 bit countdown cell, written by the CPU and decremented by the timer loop"""
    def __init__(self):
        super().__init__()
        self._value = 0

    def get(self):
        with self._lock:
            return self._value

    def set(self, value):
        with self._lock:
            self._value = value & 0xFF

    def tick(self):
        """decrement if active, return True when the timer was active"""
        with self._lock:
            if self._value == 0:
                return False
            self._value -= 1
            return True


# ******************** MEMORY SECTION
# ********** WRAPS A LIST TO REPRESENT A STACK WITH A LIMITED SIZE OF 16 ADDRESSES
class Stack:
    def __init__(self, depth=STACK_DEPTH):
        self.addr_list = []
        self.depth = depth
        self.size = 0

    def append(self, address):
        if self.size >= self.depth:
            raise StackOverflow(f"The CHIP-8 stack can contain at most {self.depth} addresses. Limit exceeded")
        self.addr_list.append(address)
        self.size += 1

    def pop(self):
        if self.size == 0:
            raise StackUnderflow("Return with an empty CHIP-8 stack")
        self.size -= 1
        return self.addr_list.pop()

    def __str__(self):
        return "[" + ", ".join(f"0x{addr:04x}" for addr in self.addr_list) + "]"

# ********** WRAPS A BYTEARRAY TO REPRESENT THE MAIN MEMORY WITH A LIMITED SIZE OF 4KB
class Memory:
    def __init__(self, fonts=C8_FONTS):
        if len(fonts) != FONT_BYTES_PER_CHAR * 16:
            raise ValueError(f"The font table must be {FONT_BYTES_PER_CHAR * 16} bytes long, got {len(fonts)}")
        self.inner = bytearray(MEMORY_SIZE)
        self.inner[FONT_START_ADDRESS:FONT_START_ADDRESS+len(fonts)] = bytes(fonts)

    @staticmethod
    def _check(address):
        if not 0 <= address < MEMORY_SIZE:
            raise IndexError(f"Memory address 0x{address:04x} is outside the 4KB address space")

    def __setitem__(self, address, value):
        self._check(address)
        self.inner[address] = value & 0xFF

    def __getitem__(self, address):
        self._check(address)
        return self.inner[address]

    def load_rom(self, rom):
        """copy the ROM image at ROM_START_ADDRESS, raise ImageTooLarge if it doesn't fit"""
        if len(rom) > MAX_ROM_SIZE:
            raise ImageTooLarge(f"The ROM is {len(rom)} bytes long but only {MAX_ROM_SIZE} bytes are available")
        self.inner[ROM_START_ADDRESS:ROM_START_ADDRESS+len(rom)] = rom
        log.info(f"Loaded rom! {len(rom)} bytes.")


# ******************** CPU SECTION
class Chip8:
    def __init__(self, rom=b"", fonts=C8_FONTS):
        self.mem = Memory(fonts)
        self.mem.load_rom(rom)
        self.stack = Stack()
        self.v_regs = bytearray(N_REGISTERS)
        self.pc = ROM_START_ADDRESS
        self.idx = 0        # specify where the sprites reside in memory
        self.opcode = 0     # last fetched instruction
        # shared with the display and timer loops
        self.vram = DisplayBuffer()
        self.keypad = KeyBuffer()
        self.dt = Timer()   # delay timer, active when non-zero
        self.st = Timer()   # sound timer, active when non-zero
        self.instructions = {
            0x00E0: self._clear_screen,
            0x00EE: self._return,
            0x1000: self._jump,
            0x2000: self._call_addr,
            0x3000: self._skip_if_eq,
            0x4000: self._skip_if_not_eq,
            0x5000: self._skip_if_eq_regs,
            0x6000: self._set_vk,
            0x7000: self._add_to_vk,
            0x8000: self._set_vx_to_vy,
            0x8001: self._set_vx_or_vy,
            0x8002: self._set_vx_and_vy,
            0x8003: self._set_vx_xor_vy,
            0x8004: self._add_vx_vy,
            0x8005: self._sub_vx_vy,
            0x8006: self._shr,
            0x8007: self._subn_vx_vy,
            0x800E: self._shl,
            0x9000: self._skip_if_not_eq_regs,
            0xA000: self._set_idx,
            0xB000: self._jump_plus,
            0xC000: self._random_byte_and,
            0xD000: self._to_screen,
            0xE09E: self._skip_if_pressed,
            0xE0A1: self._skip_if_not_pressed,
            0xF007: self._set_vx_dt,
            0xF00A: self._wait_keypress,
            0xF015: self._set_dt_vx,
            0xF018: self._set_st,
            0xF01E: self._add_to_idx,
            0xF029: self._select_char,
            0xF033: self._bcd_repr,
            0xF055: self._store_vregs,
            0xF065: self._load_vregs,
        }

    @property
    def sp(self):
        """number of occupied stack entries"""
        return self.stack.size

    def __str__(self):
        registers = f"PC_REGISTER:0x{self.pc:04x} | IDX_REGISTER:0x{self.idx:04x} | VARIABLE_REGISTERS:{list(self.v_regs)}"
        stack = f"STACK:{self.stack} | SP:{self.sp}"
        last = f"OPCODE:0x{self.opcode:04x}"
        return f"{registers}\n{stack}\n{last}"

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SKP V{x}")
    def _skip_if_pressed(self, opcode):
        """skip the following instruction if the key corresponding to the hex value stored in Vx is pressed"""
        x = (opcode & 0x0F00) >> 8
        key = self.v_regs[x] & 0xF
        if self.keypad.is_pressed(key):
            self._goto_next_instruction()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SKNP V{x}")
    def _skip_if_not_pressed(self, opcode):
        """skip the following instruction if the key corresponding to the hex value stored in Vx is NOT pressed"""
        x = (opcode & 0x0F00) >> 8
        key = self.v_regs[x] & 0xF
        if not self.keypad.is_pressed(key):
            self._goto_next_instruction()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD V{x}, K")
    def _wait_keypress(self, opcode):
        """wait for a key press and store its value in Vx"""
        x = (opcode & 0x0F00) >> 8
        key = self.keypad.first_pressed()
        if key is None:
            self.pc = (self.pc - 0x2) & ADDRESS_MASK    # stay on the same instruction until a key is pressed
        else:
            self.v_regs[x] = key
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD V{x}, DT")
    def _set_vx_dt(self, opcode):
        """set Vx = DT (delay timer) value"""
        x = (opcode & 0x0F00) >> 8
        self.v_regs[x] = self.dt.get()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD DT, V{x}")
    def _set_dt_vx(self, opcode):
        """set DT (delay timer) = Vx"""
        x = (opcode & 0x0F00) >> 8
        self.dt.set(self.v_regs[x])
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: CLS")
    def _clear_screen(self, opcode):
        self.vram.clear()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: RET")
    def _return(self, opcode):
        """return from a subroutine"""
        self.pc = self.stack.pop()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: JP 0x{address:04x}")
    def _jump(self, opcode):
        address = opcode & 0x0FFF
        self.pc = address
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: CALL 0x{address:04x}")
    def _call_addr(self, opcode):
        address = opcode & 0x0FFF
        self.stack.append(self.pc)
        self.pc = address
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SE V{x}, {comparison_value}")
    def _skip_if_eq(self, opcode):
        x = (opcode & 0x0F00) >> 8
        comparison_value = opcode & 0x00FF
        if self.v_regs[x] == comparison_value:
            self._goto_next_instruction()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SNE V{x}, {comparison_value}")
    def _skip_if_not_eq(self, opcode):
        x = (opcode & 0x0F00) >> 8
        comparison_value = opcode & 0x00FF
        if self.v_regs[x] != comparison_value:
            self._goto_next_instruction()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SE V{x}, V{y}")
    def _skip_if_eq_regs(self, opcode):
        x, y = (opcode & 0x0F00) >> 8, (opcode & 0x00F0) >> 4
        if self.v_regs[x] == self.v_regs[y]:
            self._goto_next_instruction()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SNE V{x}, V{y}")
    def _skip_if_not_eq_regs(self, opcode):
        x, y = (opcode & 0x0F00) >> 8, (opcode & 0x00F0) >> 4
        if self.v_regs[x] != self.v_regs[y]:
            self._goto_next_instruction()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD V{x}, {value}")
    def _set_vk(self, opcode):
        """set the value of one of the 16 variable registers, Vx"""
        x, value = (opcode & 0x0F00) >> 8, opcode & 0x00FF
        self.v_regs[x] = value
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: ADD V{x}, {value}")
    def _add_to_vk(self, opcode):
        """add to the value already present in one of the variable registers, VF is not touched"""
        x, value = (opcode & 0x0F00) >> 8, opcode & 0x00FF
        self.v_regs[x] = (self.v_regs[x] + value) & 0xFF    # keep only the lowest 8 bits from the result and store them in Vx
        return locals()

    # the 8xy_ group reads both operands before writing anything, so Vx == Vy and Vx == VF behave
    # the VF flag is always written last
    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD V{x}, V{y}")
    def _set_vx_to_vy(self, opcode):
        """set the value of Vx equal to that of Vy"""
        x, y = (opcode & 0x0F00) >> 8, (opcode & 0x00F0) >> 4
        self.v_regs[x] = self.v_regs[y]
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: OR V{x}, V{y}")
    def _set_vx_or_vy(self, opcode):
        """set the value of Vx to Vx OR Vy"""
        x, y = (opcode & 0x0F00) >> 8, (opcode & 0x00F0) >> 4
        self.v_regs[x] |= self.v_regs[y]
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: AND V{x}, V{y}")
    def _set_vx_and_vy(self, opcode):
        """set the value of Vx to Vx AND Vy"""
        x, y = (opcode & 0x0F00) >> 8, (opcode & 0x00F0) >> 4
        self.v_regs[x] &= self.v_regs[y]
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: XOR V{x}, V{y}")
    def _set_vx_xor_vy(self, opcode):
        """set the value of Vx to Vx XOR Vy"""
        x, y = (opcode & 0x0F00) >> 8, (opcode & 0x00F0) >> 4
        self.v_regs[x] ^= self.v_regs[y]
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: ADD V{x}, V{y}")
    def _add_vx_vy(self, opcode):
        """set the value of Vx to Vx + Vy, VF = carry"""
        x, y = (opcode & 0x0F00) >> 8, (opcode & 0x00F0) >> 4
        total = self.v_regs[x] + self.v_regs[y]
        self.v_regs[x] = total & 0xFF   # keep only the lowest 8 bits from the result and store them in Vx
        self.v_regs[0xF] = 1 if total > 255 else 0
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SUB V{x}, V{y}")
    def _sub_vx_vy(self, opcode):
        """set the value of Vx to Vx - Vy, VF = NOT borrow"""
        x, y = (opcode & 0x0F00) >> 8, (opcode & 0x00F0) >> 4
        vx, vy = self.v_regs[x], self.v_regs[y]
        self.v_regs[x] = (vx - vy) & 0xFF
        self.v_regs[0xF] = 1 if vx >= vy else 0
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SHR V{x}")
    def _shr(self, opcode):
        """set Vx equal to Vx SHR 1, VF = least significant bit before the shift"""
        x = (opcode & 0x0F00) >> 8
        vx = self.v_regs[x]
        self.v_regs[x] = vx >> 1
        self.v_regs[0xF] = vx & 0x1
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SUBN V{x}, V{y}")
    def _subn_vx_vy(self, opcode):
        """set the value of Vx to Vy - Vx, VF = NOT borrow"""
        x, y = (opcode & 0x0F00) >> 8, (opcode & 0x00F0) >> 4
        vx, vy = self.v_regs[x], self.v_regs[y]
        self.v_regs[x] = (vy - vx) & 0xFF
        self.v_regs[0xF] = 1 if vy >= vx else 0
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SHL V{x}")
    def _shl(self, opcode):
        """set Vx equal to Vx SHL 1, VF = most significant bit before the shift"""
        x = (opcode & 0x0F00) >> 8
        vx = self.v_regs[x]
        self.v_regs[x] = (vx << 1) & 0xFF   # multiply by 2 and keep only the lowest 8 bits from the result
        self.v_regs[0xF] = (vx & 0x80) >> 7
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD I, 0x{value:04x}")
    def _set_idx(self, opcode):
        """set the value of the I register"""
        value = opcode & 0x0FFF
        self.idx = value
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: JP V0, 0x{address:04x}")
    def _jump_plus(self, opcode):
        address = opcode & 0x0FFF
        v0 = self.v_regs[0x0]
        self.pc = (address + v0) & ADDRESS_MASK
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: RND V{x}, 0x{kk:02x}")
    def _random_byte_and(self, opcode):
        x, kk = (opcode & 0x0F00) >> 8, opcode & 0x00FF
        rnd = random.randint(0, 255)
        self.v_regs[x] = rnd & kk
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD ST, V{register}")
    def _set_st(self, opcode):
        """set ST = Vx"""
        register = (opcode & 0x0F00) >> 8
        self.st.set(self.v_regs[register])
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: ADD I, V{register}")
    def _add_to_idx(self, opcode):
        """set I = I + Vx"""
        register = (opcode & 0x0F00) >> 8
        self.idx = (self.idx + self.v_regs[register]) & 0xFFFF
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD F, V{register}")
    def _select_char(self, opcode):
        """set I to location of sprite for digit Vx"""
        register = (opcode & 0x0F00) >> 8
        digit = self.v_regs[register] & 0xF
        self.idx = FONT_START_ADDRESS + digit * FONT_BYTES_PER_CHAR
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD [I], V{x}")
    def _store_vregs(self, opcode):
        """store registers V0 through Vx (included) in memory starting at location I"""
        x = (opcode & 0x0F00) >> 8
        for i in range(x + 1):
            self.mem[(self.idx + i) & ADDRESS_MASK] = self.v_regs[i]
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD V{x}, [I]")
    def _load_vregs(self, opcode):
        """read registers V0 through Vx (included) from memory starting at location I"""
        x = (opcode & 0x0F00) >> 8
        for i in range(x + 1):
            self.v_regs[i] = self.mem[(self.idx + i) & ADDRESS_MASK]
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD B, V{x}")
    def _bcd_repr(self, opcode):
        """takes the decimal value of Vx and the hundreds digit in memory at I, the tens digit at I+1, the ones digit at I+2"""
        x = (opcode & 0x0F00) >> 8
        value = self.v_regs[x]
        hundreds, tens, ones = value // 100, (value // 10) % 10, value % 10
        for offset, digit in enumerate((hundreds, tens, ones)):
            self.mem[(self.idx + offset) & ADDRESS_MASK] = digit
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: DRW V{x}, V{y}, {n_bytes}")
    def _to_screen(self, opcode):
        """display n-byte sprite starting at memory location I at (Vx, Vy), set VF = collision"""
        x, y = (opcode & 0x0F00) >> 8, (opcode & 0x00F0) >> 4
        n_bytes = opcode & 0x000F
        # only the start position wraps around, pixels falling off the right or bottom edge are clipped
        x0, y0 = self.v_regs[x] % self.vram.w, self.v_regs[y] % self.vram.h
        self.v_regs[0xF] = 0
        collision = 0
        with self.vram as screen:
            for i in range(n_bytes):
                y_coordinate = y0 + i
                if y_coordinate >= screen.h:
                    break
                sprite_byte = self.mem[(self.idx + i) & ADDRESS_MASK]
                row = screen.rows[y_coordinate]
                for j in range(8):
                    x_coordinate = x0 + j
                    if x_coordinate >= screen.w:
                        break
                    if not sprite_byte & (0x80 >> j):
                        continue
                    # sprites are XORed onto the existing screen, erasing an ON pixel is a collision
                    if row[x_coordinate]:
                        collision = 1
                    row[x_coordinate] ^= 1
        self.v_regs[0xF] = collision
        return locals()

    def _goto_next_instruction(self):
        self.pc = (self.pc + 0x2) & ADDRESS_MASK

    def decode(self, opcode):
        """decode opcodes using masks and return respective function"""
        # WATCH OUT: masks order is important!!!
        # as the for loop breaks out as soon as it finds a match
        masks = {
            0xF0FF: [0x00E0,0x00EE,0xE09E,0xE0A1,0xF007,0xF00A,0xF015,0xF018,0xF01E,0xF029,0xF033,0xF055,0xF065],
            0xF00F: [0x8000,0x8001,0x8002,0x8003,0x8004,0x8005,0x8006,0x8007,0x800E],
            0xF000: [0x1000,0x2000,0x3000,0x4000,0x5000,0x6000,0x7000,0x9000,0xA000,0xB000,0xC000,0xD000],
        }
        for m, ops in masks.items():
            if (opcode & m) in ops:
                return self.instructions[opcode & m]     # retrieve and return relative instruction
        raise UnhandledInstruction(opcode, (self.pc - 2) & ADDRESS_MASK)

    def cycle(self):
        """fetch, decode and execute a single instruction"""
        # fetch (each instruction is two bytes long, big endian)
        self.opcode = self.mem[self.pc] << 8 | self.mem[(self.pc + 1) & ADDRESS_MASK]
        self._goto_next_instruction()
        # decode + execute
        try:
            instruction = self.decode(self.opcode)
        except UnhandledInstruction as err:
            log.warning(f"{err}, skipping it")
            return
        instruction(self.opcode)


# ******************** ENTRY POINT SECTION
class CpuLoop(threading.Thread):
    """runs chip.cycle() cpu_hz times per second until stopped or until the machine faults"""
    def __init__(self, chip, cpu_hz, stop):
        super().__init__(name="chip8-cpu", daemon=True)
        self.chip = chip
        self.delay = 1.0 / cpu_hz
        self.stop = stop
        self.fault = None

    def run(self):
        try:
            while not self.stop.wait(self.delay):
                self.chip.cycle()
        except Chip8Error as err:
            self.fault = err
            log.error(f"********** THE EMULATOR CRASHED WITH THE FOLLOWING STATE\n{self.chip}\n{err}")


def main(argv=None):
    args = get_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if DEBUG else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    try:
        chip = Chip8(read_rom(args.file))
    except (OSError, ImageTooLarge) as err:
        sys.exit(f"Could not load the ROM at path {args.file}: {err}")

    # pygame initialization
    pygame.mixer.pre_init(44100, -16, 1)
    pygame.init()
    pygame.display.set_caption(os.path.basename(args.file))
    screen = Screen(s=args.scale)

    stop = threading.Event()
    cpu = CpuLoop(chip, args.cpu_hz, stop)
    start_timers(chip.dt, chip.st, Beeper().beep, stop)
    cpu.start()

    log.info(f"Rom file path: {args.file}")
    log.info(f"Scale factor: {args.scale}x so resolution of {SCREEN_WIDTH * args.scale}x{SCREEN_HEIGHT * args.scale}")
    log.info(f"Refresh rate: {args.fps}hz so delay time of {1 / args.fps:.4f} seconds")
    log.info(f"Processor running at {args.cpu_hz}hz so delay time of {1 / args.cpu_hz:.4f} seconds")

    try:
        run_display(screen, chip.vram, chip.keypad, args.fps)
    finally:
        stop.set()
        pygame.quit()
    if cpu.fault is not None:
        sys.exit(f"The emulator stopped after a machine fault: {cpu.fault}")


if __name__ == "__main__":
    main()
