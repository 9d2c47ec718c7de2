import json
import os
from tempfile import TemporaryDirectory

from jupyter_client.kernelspec import install_kernel_spec

from .kernel import LC3VMKernel


def install_my_kernel_spec(user=True, prefix=None):
    with TemporaryDirectory() as td:
        os.chmod(td, 0o755) # Starts off as 700, not user readable
        with open(os.path.join(td, 'kernel.json'), 'w') as f:
            json.dump(LC3VMKernel.kernel_json, f, sort_keys=True)

        print('Installing Jupyter kernel spec')
        install_kernel_spec(td, 'lc3vm', user=user, replace=True, prefix=prefix)


def main(argv=None):
    install_my_kernel_spec()

if __name__ == '__main__':
    main()
