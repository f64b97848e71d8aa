import os

def dvfm_packages():
    pkg_dir = os.path.dirname(os.path.abspath(__file__))
    return {
        'gql':                             os.path.join(pkg_dir, 'flow.dv'),
    }
