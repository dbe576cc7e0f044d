"""
服務層

這個 package 包含純計算邏輯與外部查詢，不負責狀態轉換：
- OutcomeService：獲勝顏色與贏家的隨機選擇
- BalanceService：鏈上代幣餘額查詢
- EligibilityService：錢包驗證與投票資格
- HistoryService：歷史回合與投票者列表
"""
