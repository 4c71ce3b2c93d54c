"""
Colours and prefixes for terminal output.

The colour functions are generated at import time, hence the
``no-name-in-module`` pylint hints wherever this module is imported.
"""

_COLORS = {'red': 31, 'green': 32, 'yellow': 33, 'grey': 90, 'lightcyan': 96}

_STYLES = {'bold': 1}

END = '\033[0m'


def _painter(code):
    def paint(text):
        return '\033[%dm%s%s' % (code, text, END)
    return paint


for _name, _code in list(_COLORS.items()) + list(_STYLES.items()):
    globals()[_name] = _painter(_code)


def _prefixer(sign, code):
    def prefix(text):
        return '\033[1;%dm[%s]%s %s' % (code, sign, END, text)
    return prefix


good = _prefixer('+', 32)
bad = _prefixer('-', 31)
info = _prefixer('!', 33)
run = _prefixer('~', 37)
