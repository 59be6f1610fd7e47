# diff-search: pick hunks out of a unified diff and apply them
#
# This software may be used and distributed according to the terms of
# the GNU General Public License, incorporated herein by reference.
#
# SPDX-License-Identifier: GPL-2.0-or-later

'''extract and apply the hunks of a large diff matching search terms'''

__version__ = '1.1'
