# SPDX-FileCopyrightText: Copyright (C) 2024 David Stainton
# SPDX-License-Identifier: AGPL-3.0-only

__version__ = '0.1.0'
__author__ = 'Theta Wallet Connect developers'
__contact__ = 'dev@thetatoken.org'
__url__ = 'https://github.com/thetatoken/theta-wallet-connect'
__license__ = 'AGPL-3.0-only'
