# -*- coding: utf-8 -*-
"""timeline-hub：多来源市场事件采集、跨来源对账去重、定时入库。"""

__version__ = "0.1.0"
