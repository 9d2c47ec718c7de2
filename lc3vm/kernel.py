import sys

from metakernel import Magic, MetaKernel

from ._version import __version__
from .console import Console
from .lc3 import LC3, LC3Error, disassemble, lc_hex
from .loader import load_file, load_image, parse_hex_image


class KernelConsole(Console):
    """
    Console for a notebook: input comes from the kernel's input box,
    output is printed into the cell.
    """

    def __init__(self, kernel):
        self.kernel = kernel
        self.char_buffer = []
        self.pending = []

    def char_ready(self):
        return len(self.char_buffer) > 0

    def read_char(self):
        ### No prompt for input:
        if len(self.char_buffer) == 0:
            self.flush()
            data = self.kernel.raw_input("")
            data = data.replace("\\n", "\n")
            if len(data) == 0:
                self.char_buffer = [ord("\n")]
            else:
                self.char_buffer = [ord(char) & 0xFF for char in data]
        return self.char_buffer.pop(0)

    def write_char(self, code):
        self.pending.append(chr(code))

    def flush(self):
        if self.pending:
            self.kernel.Print("".join(self.pending), end="")
            self.pending = []


class ImageMagic(Magic):

    def line_obj(self, filename):
        """
        %obj FILENAME - load an LC3 object file (.obj)

        The PC is set to the image's origin; use %exe to run it.
        """
        self.kernel.load_object_file(filename)

    def line_exe(self):
        """
        %exe - run the loaded image from its origin

        Registers are cleared first. Console input is read from the
        notebook when the program asks for it.
        """
        self.kernel.execute_image()

    def line_regs(self):
        """
        %regs - show the registers
        """
        self.kernel.lc3.dump_registers()

    def line_reset(self):
        """
        %reset - clear memory and registers
        """
        self.kernel.lc3.initialize()
        self.kernel.lc3.dump_registers()


class LC3VMKernel(MetaKernel):
    implementation = 'LC3VM'
    implementation_version = __version__
    language = 'LC3 machine code'
    language_version = '0.1'
    banner = "LC3 virtual machine - load and run LC3 object images"
    language_info = {
        'name': 'lc3vm',
        'mimetype': 'text/plain',
        'file_extension': '.obj',
    }
    kernel_json = {
        "argv": [sys.executable, "-m", "lc3vm.kernel", "-f", "{connection_file}"],
        "display_name": "LC3 VM",
        "language": "lc3vm",
        "name": "lc3vm",
    }

    def __init__(self, *args, **kwargs):
        super(LC3VMKernel, self).__init__(*args, **kwargs)
        self.lc3 = LC3(KernelConsole(self), kernel=self)
        self.register_magics(ImageMagic)

    def get_usage(self):
        return """This is the LC3 VM Jupyter kernel.

Enter an object image as hex words, origin first:

    x3000 x1025 x1025 xF025

Directives:

 %obj FILENAME                      - load an object file (.obj)
 %exe                               - execute the loaded program
 %regs                              - show registers
 %reset                             - reset LC3 to start state

HEX values begin with an 'x' and are composed of 4 0-F digits or letters.
"""

    def get_completions(self, info):
        token = info["help_obj"]
        return [item for item in ["%obj", "%exe", "%regs", "%reset"]
                if item.startswith(token)]

    def load_object_file(self, filename):
        try:
            origin = load_file(self.lc3, filename, min_origin=0)
        except LC3Error as exc:
            self.Error(str(exc))
            return
        self.Print("Loaded %s at %s. Use %%exe to run." % (filename, lc_hex(origin)))

    def execute_image(self):
        lc3 = self.lc3
        lc3.reset_registers()
        lc3.set_pc(lc3.orig)
        try:
            lc3.run()
        except LC3Error as exc:
            self.Error("\nRuntime error:\n    memory %s\n%s" % (
                lc_hex(getattr(exc, "address", lc3.get_pc())), exc))
            return
        except KeyboardInterrupt:
            self.Error("Keyboard Interrupt!")
            return
        finally:
            lc3.console.flush()
        self.Print()
        lc3.report()

    def do_execute_direct(self, code):
        if not code.strip():
            return
        try:
            data = parse_hex_image(code)
            origin = load_image(self.lc3, data, min_origin=0)
        except LC3Error as exc:
            self.Error(str(exc))
            return
        count = len(data) // 2 - 1
        self.Print("Loaded %d words at %s. Use %%exe to run." % (count, lc_hex(origin)))
        for location in range(origin, origin + count):
            word = self.lc3.memory.cells[location]
            self.Print("%s: %s  %s" % (lc_hex(location), lc_hex(word),
                                       disassemble(word, location)))

    def repr(self, data):
        return repr(data)


if __name__ == '__main__':
    LC3VMKernel.run_as_main()
