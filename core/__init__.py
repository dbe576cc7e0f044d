"""
核心業務邏輯層

這個 package 包含所有核心業務邏輯，包括：
- RoundEngine：回合生命週期（單一寫入者的事件佇列 + 倒數計時）
- 狀態機：集中管理所有階段轉換
- VoteLedger：投票去重與計票
- Broadcaster：快照廣播
- Repository / Locks：資料存取與並發控制工具
"""
